from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypedDict, TypeVar, Union

T = TypeVar("T")


class DifficultyLevel(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class RawProviderResponse(TypedDict, total=False):
    id: str
    model: str
    choices: list[dict[str, Any]]
    usage: dict[str, Any]


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    base_url: str
    timeout_ms: int
    max_retries: int
    selected_model: str
    headers: dict[str, str] = field(default_factory=dict)
    request_body: dict[str, Any] = field(default_factory=dict)


@dataclass
class ParsedPayload:
    question: str
    answers: list[str]


@dataclass
class TriviaAnswer:
    text: str
    is_correct: bool = False


@dataclass
class ParseSuccess:
    question: str
    answers: list[TriviaAnswer]
    validation_summary: str = ""


@dataclass
class ParseEmpty:
    explanation: str
    validation_summary: str = ""


ParsedOutcome = Union[ParseSuccess, ParseEmpty]


@dataclass
class QuestionMetadata:
    provider_name: str
    mapped_difficulty: DifficultyLevel
    generated_at: str
    custom_difficulty_description: Union[str, None] = None
    model: Union[str, None] = None
    validation_summary: Union[str, None] = None
    response_time_ms: Union[int, None] = None


@dataclass
class TriviaQuestionDraft:
    topic: str
    difficulty: str
    question: str
    answers: list[TriviaAnswer]
    correct_answer_index: int
    metadata: QuestionMetadata


@dataclass
class RetryPolicy:
    max_retries: int = 3
    base_delay_ms: int = 1000
    per_attempt_timeout_ms: int = 30000
    max_delay_ms: int = 30000
    jitter_ms: int = 0
    retry_on_rate_limit: bool = True
    retry_on_server_error: bool = True
    retry_on_network_error: bool = True
    classify: Union[Callable[[BaseException], bool], None] = None
    on_retry: Union[Callable[[int, BaseException, int], None], None] = None
    on_final_error: Union[Callable[[BaseException, int], None], None] = None
    # Auth failures indicate misconfiguration and are never retried.
    retry_on_auth_error: bool = field(default=False, init=False)


@dataclass
class RetryResult(Generic[T]):
    value: T
    attempts: int
    duration_ms: int
