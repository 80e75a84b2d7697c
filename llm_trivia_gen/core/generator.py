"""End-to-end trivia question generation.

``TriviaGenerator.generate`` walks a request through BUILD_PROMPT,
CALL_PROVIDER, PARSE_RESPONSE, VALIDATE, SANITIZE and SHUFFLE. Any failure
moves it to FAILED and surfaces as a single ``QuestionGenerationError``
that records the stage and keeps the original cause. There is no fallback
question.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from ..adapters.base import ProviderClient
from .errors import AnswerIntegrityError, EmptyGenerationError, QuestionGenerationError, ValidationError
from .parser import ResponseParser
from .prompt import (
    PromptContext,
    extract_custom_difficulty_text,
    is_custom_difficulty,
    render_prompt,
    resolve_mapped_difficulty,
)
from .settings import GeneratorSettings
from .types import (
    ParseEmpty,
    QuestionMetadata,
    RawProviderResponse,
    TriviaAnswer,
    TriviaQuestionDraft,
)

logger = logging.getLogger(__name__)


class GenerationStage(str, Enum):
    BUILD_PROMPT = "build_prompt"
    CALL_PROVIDER = "call_provider"
    PARSE_RESPONSE = "parse_response"
    VALIDATE = "validate"
    SANITIZE = "sanitize"
    SHUFFLE = "shuffle"
    DONE = "done"
    FAILED = "failed"


def shuffle_answers(answers: list[TriviaAnswer], rng: random.Random) -> list[TriviaAnswer]:
    """Return a uniformly random permutation of copies of ``answers``."""
    shuffled = [TriviaAnswer(text=a.text, is_correct=a.is_correct) for a in answers]
    rng.shuffle(shuffled)
    return shuffled


def find_correct_index(answers: list[TriviaAnswer]) -> int:
    indices = [i for i, answer in enumerate(answers) if answer.is_correct]
    if len(indices) != 1:
        raise AnswerIntegrityError(f"Expected 1 correct answer, found {len(indices)}")
    return indices[0]


class TriviaGenerator:
    def __init__(
        self,
        client: ProviderClient,
        parser: Optional[ResponseParser] = None,
        settings: Optional[GeneratorSettings] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.client = client
        self.settings = settings or GeneratorSettings()
        self.provider_name = getattr(client, "id", self.settings.provider_name)
        self.parser = parser or ResponseParser(self.provider_name)
        self.rng = rng or random.SystemRandom()

    def clamp_answer_count(self, requested: Optional[int]) -> int:
        count = self.settings.answer_count_default if requested is None else requested
        return max(self.settings.answer_count_min, min(self.settings.answer_count_max, count))

    def build_prompt(self, topic: str, difficulty: str, answer_count: int) -> str:
        return render_prompt(PromptContext(topic=topic, difficulty=difficulty, answer_count=answer_count))

    async def generate(
        self,
        topic: str,
        difficulty: str,
        answer_count: Optional[int] = None,
        cancel_event: Union[asyncio.Event, None] = None,
    ) -> TriviaQuestionDraft:
        start = time.perf_counter()
        log_fields = {"provider": self.provider_name, "topic": topic, "difficulty": difficulty}
        stage = GenerationStage.BUILD_PROMPT
        try:
            count = self.clamp_answer_count(answer_count)
            if answer_count is not None and answer_count != count:
                logger.info(
                    "answer_count_clamped",
                    extra={"fields": {**log_fields, "requested": answer_count, "clamped": count}},
                )
            prompt = self.build_prompt(topic, difficulty, count)

            stage = GenerationStage.CALL_PROVIDER
            raw = await self.client.call(prompt, cancel_event=cancel_event)

            stage = GenerationStage.PARSE_RESPONSE
            outcome = self.parser.parse(raw, count)
            if outcome.validation_summary:
                logger.info(
                    "response_validation",
                    extra={"fields": {**log_fields, "validation": outcome.validation_summary}},
                )
            if isinstance(outcome, ParseEmpty):
                raise EmptyGenerationError(f"could not generate question: {outcome.explanation}")

            stage = GenerationStage.VALIDATE
            if not outcome.question or len(outcome.answers) < 2:
                raise ValidationError("Invalid question format from provider")

            stage = GenerationStage.SANITIZE
            question = outcome.question.strip()
            answers = [TriviaAnswer(text=a.text.strip(), is_correct=a.is_correct) for a in outcome.answers]

            stage = GenerationStage.SHUFFLE
            answers = shuffle_answers(answers, self.rng)
            correct_index = find_correct_index(answers)
        except Exception as exc:
            logger.error(
                "generation_failed",
                extra={
                    "fields": {
                        **log_fields,
                        "stage": stage.value,
                        "state": GenerationStage.FAILED.value,
                        "error": str(exc),
                    }
                },
            )
            raise QuestionGenerationError(stage=stage.value, cause=exc) from exc

        response_time_ms = int((time.perf_counter() - start) * 1000)
        metadata = self._build_metadata(difficulty, raw, outcome.validation_summary, response_time_ms)
        logger.info(
            "generation_succeeded",
            extra={
                "fields": {
                    **log_fields,
                    "state": GenerationStage.DONE.value,
                    "response_time_ms": response_time_ms,
                }
            },
        )
        return TriviaQuestionDraft(
            topic=topic,
            difficulty=difficulty,
            question=question,
            answers=answers,
            correct_answer_index=correct_index,
            metadata=metadata,
        )

    def _build_metadata(
        self,
        difficulty: str,
        raw: RawProviderResponse,
        validation_summary: str,
        response_time_ms: int,
    ) -> QuestionMetadata:
        metadata = QuestionMetadata(
            provider_name=self.provider_name,
            mapped_difficulty=resolve_mapped_difficulty(difficulty),
            generated_at=datetime.now(timezone.utc).isoformat(),
            model=raw.get("model") if isinstance(raw, dict) else None,
            validation_summary=validation_summary or None,
            response_time_ms=response_time_ms,
        )
        if is_custom_difficulty(difficulty):
            custom_text = extract_custom_difficulty_text(difficulty)
            metadata.custom_difficulty_description = custom_text or difficulty
        return metadata
