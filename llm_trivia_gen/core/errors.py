from __future__ import annotations

from enum import Enum
from typing import Union


class ErrorKind(str, Enum):
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    NETWORK = "network"
    REQUEST = "request"
    VALIDATION = "validation"
    EMPTY = "empty"
    INTEGRITY = "integrity"
    CANCELLED = "cancelled"
    GENERATION = "generation"


class TriviaGenError(Exception):
    """Base class for every failure raised by the generation pipeline."""

    kind: ErrorKind = ErrorKind.GENERATION

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        # Filled in by RetryExecutor once the retry loop gives up.
        self.attempts: Union[int, None] = None


class ProviderError(TriviaGenError):
    def __init__(
        self,
        message: str,
        status_code: Union[int, None] = None,
        provider: Union[str, None] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider


class AuthError(ProviderError):
    kind = ErrorKind.AUTH


class RateLimitError(ProviderError):
    kind = ErrorKind.RATE_LIMIT

    def __init__(
        self,
        message: str,
        retry_after: Union[int, None] = None,
        status_code: Union[int, None] = 429,
        provider: Union[str, None] = None,
    ) -> None:
        super().__init__(message, status_code=status_code, provider=provider)
        self.retry_after = retry_after


class ServerError(ProviderError):
    kind = ErrorKind.SERVER


class NetworkError(ProviderError):
    kind = ErrorKind.NETWORK


class ProviderRequestError(ProviderError):
    """Non-2xx response that is neither auth, rate limit nor 5xx."""

    kind = ErrorKind.REQUEST


class ValidationError(TriviaGenError):
    kind = ErrorKind.VALIDATION


class EmptyGenerationError(TriviaGenError):
    kind = ErrorKind.EMPTY


class AnswerIntegrityError(TriviaGenError):
    kind = ErrorKind.INTEGRITY


class GenerationCancelledError(TriviaGenError):
    kind = ErrorKind.CANCELLED


class QuestionGenerationError(TriviaGenError):
    """The single outward-facing failure of TriviaGenerator.generate."""

    def __init__(
        self,
        message: str = "failed to generate trivia question",
        stage: Union[str, None] = None,
        cause: Union[BaseException, None] = None,
    ) -> None:
        super().__init__(message)
        self.stage = stage
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message}: {self.cause}"
