from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Union

from ..core.types import RawProviderResponse

ANSWER_COUNT_PATTERN = re.compile(r"Answer count: (\d+)")
CANNED_QUESTION = "Which city is the capital of France?"
CANNED_ANSWERS = ["Paris", "Lyon", "Marseille", "Toulouse", "Nice"]


def _canned_payload(prompt: str) -> dict[str, Any]:
    match = ANSWER_COUNT_PATTERN.search(prompt)
    count = int(match.group(1)) if match else 4
    return {"question": CANNED_QUESTION, "answers": CANNED_ANSWERS[:count]}


class MockAdapter:
    """Simple adapter that returns canned chat completions for testing."""

    def __init__(self, model: str = "mock", payload: Union[dict[str, Any], str, None] = None) -> None:
        self.id = f"mock:{model}"
        self.model = model
        self.payload = payload
        self.prompts: list[str] = []

    async def call(
        self, prompt: str, cancel_event: Union[asyncio.Event, None] = None
    ) -> RawProviderResponse:
        self.prompts.append(prompt)
        payload = self.payload if self.payload is not None else _canned_payload(prompt)
        content = payload if isinstance(payload, str) else json.dumps(payload)
        return RawProviderResponse(
            model=self.model,
            choices=[
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": content},
                    "finish_reason": "stop",
                }
            ],
        )
