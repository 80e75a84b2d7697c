from __future__ import annotations

import json
import logging
import re
from typing import Any

from .errors import ValidationError
from .types import ParsedOutcome, ParsedPayload, ParseEmpty, ParseSuccess, TriviaAnswer

logger = logging.getLogger(__name__)

QUESTION_MAX_LENGTH = 150
ANSWER_MAX_LENGTH = 100
ALLOWED_KEYS = frozenset({"question", "answers"})
SMART_DOUBLE_QUOTES = re.compile("[“”„‟«»＂]")
UNABLE_TO_GENERATE = "Provider could not generate a compliant question"


class ResponseParser:
    """Turn a raw chat completion into a validated question payload."""

    def __init__(self, provider_name: str = "groq") -> None:
        self.provider_name = provider_name

    def parse(self, raw: Any, expected_answer_count: int) -> ParsedOutcome:
        content = self.extract_content(raw)
        return self.parse_content(content, expected_answer_count)

    def extract_content(self, raw: Any) -> str:
        choices = raw.get("choices") if isinstance(raw, dict) else None
        if not isinstance(choices, list) or not choices:
            raise ValidationError(f"{self.provider_name}: invalid provider response")
        first = choices[0]
        message = first.get("message") if isinstance(first, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise ValidationError(f"{self.provider_name}: invalid provider response")
        return content

    def parse_content(self, content: str, expected_answer_count: int) -> ParsedOutcome:
        normalized, replacements = self.normalize_quotes(content)
        payload = self._parse_payload(normalized, expected_answer_count)
        summary = self.build_validation_summary(payload, expected_answer_count, replacements)
        logger.debug("response_validated", extra={"fields": {"validation": summary}})

        if not payload.question:
            return ParseEmpty(explanation=UNABLE_TO_GENERATE, validation_summary=summary)

        # The prompt contract puts the correct answer first; callers shuffle.
        answers = [
            TriviaAnswer(text=text, is_correct=index == 0)
            for index, text in enumerate(payload.answers)
        ]
        return ParseSuccess(question=payload.question, answers=answers, validation_summary=summary)

    def _parse_payload(self, content: str, expected_answer_count: int) -> ParsedPayload:
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"{self.provider_name} response is not valid JSON") from exc
        if not isinstance(parsed, dict):
            raise ValidationError(f"{self.provider_name} response must be a JSON object")

        extra = sorted(set(parsed) - ALLOWED_KEYS)
        if extra:
            raise ValidationError(
                f"{self.provider_name} response contains unexpected keys: {', '.join(extra)}"
            )

        question = self.sanitize_question(parsed.get("question"))
        answers = self.sanitize_answers(
            parsed.get("answers"), expected_answer_count, allow_empty=not question
        )
        return ParsedPayload(question=question, answers=answers)

    def sanitize_question(self, value: Any) -> str:
        if not isinstance(value, str):
            raise ValidationError(f"{self.provider_name} question must be a string")
        normalized = SMART_DOUBLE_QUOTES.sub('"', value).strip()
        if not normalized:
            return ""
        if not normalized.endswith("?"):
            raise ValidationError(f"{self.provider_name} question must end with '?'")
        if len(normalized) > QUESTION_MAX_LENGTH:
            raise ValidationError(
                f"{self.provider_name} question exceeds {QUESTION_MAX_LENGTH} characters"
            )
        return normalized

    def sanitize_answers(
        self, value: Any, expected_answer_count: int, allow_empty: bool = False
    ) -> list[str]:
        if not isinstance(value, list):
            raise ValidationError(f"{self.provider_name} answers must be an array")
        sanitized = [self._sanitize_answer(answer) for answer in value]

        if allow_empty:
            if sanitized:
                raise ValidationError(
                    f"{self.provider_name} failure payload must not include answers"
                )
            return []

        if len(sanitized) != expected_answer_count:
            raise ValidationError(
                f"{self.provider_name} answers must contain exactly {expected_answer_count} "
                f"items, but received {len(sanitized)} items"
            )
        if len({answer.lower() for answer in sanitized}) != len(sanitized):
            raise ValidationError(f"{self.provider_name} answers must be unique")
        return sanitized

    def _sanitize_answer(self, value: Any) -> str:
        if not isinstance(value, str):
            raise ValidationError(f"{self.provider_name} answer must be a string")
        normalized = SMART_DOUBLE_QUOTES.sub('"', value).strip()
        if not normalized:
            raise ValidationError(f"{self.provider_name} answer cannot be empty")
        if len(normalized) > ANSWER_MAX_LENGTH:
            raise ValidationError(
                f"{self.provider_name} answer exceeds {ANSWER_MAX_LENGTH} characters"
            )
        return normalized

    @staticmethod
    def normalize_quotes(content: str) -> tuple[str, int]:
        return SMART_DOUBLE_QUOTES.subn('"', content)

    @staticmethod
    def build_validation_summary(
        payload: ParsedPayload, expected_answer_count: int, quote_replacements: int
    ) -> str:
        question_state = "ok" if payload.question else "empty"
        return (
            f"validated:question={question_state},"
            f"answers={len(payload.answers)}/{expected_answer_count},"
            f"quotesFixed={quote_replacements}"
        )
