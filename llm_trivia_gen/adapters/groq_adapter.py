from __future__ import annotations

import asyncio
import logging
import os
import threading
from collections.abc import Sequence
from typing import Any, Union

import httpx

from ..core.errors import (
    AuthError,
    NetworkError,
    ProviderRequestError,
    RateLimitError,
    ServerError,
    ValidationError,
)
from ..core.prompt import SYSTEM_PROMPT
from ..core.retry import RetryExecutor
from ..core.settings import GeneratorSettings, load_settings
from ..core.types import ProviderConfig, RawProviderResponse, RetryPolicy

logger = logging.getLogger(__name__)

LOGGED_CONTENT_CHARS = 100


class ModelRotation:
    """Round-robin selector over the free-tier models.

    Selection is an atomic increment-and-wrap, so one adapter can be shared by
    concurrent requests without two of them reading the same index.
    """

    def __init__(self, models: Sequence[str], start: int = 0) -> None:
        if not models:
            raise ValueError("ModelRotation needs at least one model")
        self._models = tuple(models)
        self._index = start % len(self._models)
        self._lock = threading.Lock()

    @property
    def models(self) -> tuple[str, ...]:
        return self._models

    def next(self) -> str:
        with self._lock:
            model = self._models[self._index]
            self._index = (self._index + 1) % len(self._models)
        return model


def parse_retry_after(value: Union[str, None]) -> Union[int, None]:
    if value is None:
        return None
    try:
        seconds = int(value.strip())
    except ValueError:
        return None
    return seconds if seconds > 0 else None


def _redact_body(body: dict[str, Any]) -> dict[str, Any]:
    redacted = dict(body)
    messages = redacted.get("messages")
    if isinstance(messages, list):
        redacted["messages"] = [
            {
                "role": msg.get("role"),
                "content": f"{msg['content'][:LOGGED_CONTENT_CHARS]}..."
                if isinstance(msg.get("content"), str)
                else "[content]",
            }
            for msg in messages
        ]
    return redacted


class GroqAdapter:
    """Chat completions client for Groq's OpenAI-compatible endpoint."""

    id = "groq"

    def __init__(
        self,
        settings: Union[GeneratorSettings, None] = None,
        api_key: Union[str, None] = None,
        transport: Union[httpx.AsyncBaseTransport, None] = None,
        retry_executor: Union[RetryExecutor, None] = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.id = self.settings.provider_name
        self.api_key = api_key if api_key is not None else self.settings.api_key
        self.rotation = ModelRotation(self.settings.models)
        self.retry_executor = retry_executor or RetryExecutor()
        proxy = os.environ.get("HTTPS_PROXY") or os.environ.get("HTTP_PROXY")
        if transport is not None:
            self.client = httpx.AsyncClient(base_url=self.settings.base_url, transport=transport)
        elif proxy:
            self.client = httpx.AsyncClient(base_url=self.settings.base_url, proxy=proxy)
        else:
            self.client = httpx.AsyncClient(base_url=self.settings.base_url)

    async def __aenter__(self) -> "GroqAdapter":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    def get_provider_config(self, prompt: str) -> ProviderConfig:
        model = self.rotation.next()
        return ProviderConfig(
            name=self.id,
            base_url=self.settings.base_url,
            timeout_ms=self.settings.timeout_ms,
            max_retries=self.settings.max_retries,
            selected_model=model,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                **self.settings.extra_headers,
            },
            request_body={
                "model": model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                "temperature": self.settings.temperature,
                "max_tokens": self.settings.max_tokens,
            },
        )

    async def call(
        self, prompt: str, cancel_event: Union[asyncio.Event, None] = None
    ) -> RawProviderResponse:
        if not self.api_key:
            logger.error(
                "api_key_missing",
                extra={"fields": {"provider": self.id, "api_key_env": self.settings.api_key_env}},
            )
            raise AuthError(
                f"{self.id} API key is not configured. Set {self.settings.api_key_env}.",
                provider=self.id,
            )

        config = self.get_provider_config(prompt)
        logger.info(
            "api_call_start",
            extra={
                "fields": {
                    "provider": self.id,
                    "base_url": config.base_url,
                    "model": config.selected_model,
                    "timeout_ms": config.timeout_ms,
                    "max_retries": config.max_retries,
                    "body": _redact_body(config.request_body),
                }
            },
        )
        policy = RetryPolicy(
            max_retries=config.max_retries,
            base_delay_ms=self.settings.retry_base_delay_ms,
            per_attempt_timeout_ms=config.timeout_ms,
            max_delay_ms=self.settings.retry_max_delay_ms,
            jitter_ms=self.settings.retry_jitter_ms,
            on_retry=self._log_retry,
            on_final_error=self._log_final_error,
        )
        result = await self.retry_executor.execute(lambda: self._post(config), policy, cancel_event)
        return result.value

    async def _post(self, config: ProviderConfig) -> RawProviderResponse:
        try:
            resp = await self.client.post(
                "/chat/completions",
                json=config.request_body,
                headers=config.headers,
                timeout=config.timeout_ms / 1000,
            )
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"{self.id} request timed out for model '{config.selected_model}': {e}",
                provider=self.id,
            ) from e
        except httpx.TransportError as e:
            raise NetworkError(
                f"{self.id} API request failed for model '{config.selected_model}': {e}",
                provider=self.id,
            ) from e

        if not resp.is_success:
            self._raise_for_status(resp, config.selected_model)

        try:
            data = resp.json()
        except ValueError as e:
            raise ValidationError(f"{self.id}: invalid provider response (body is not JSON)") from e
        if not isinstance(data, dict):
            raise ValidationError(f"{self.id}: invalid provider response")

        logger.info(
            "api_call_success",
            extra={
                "fields": {
                    "provider": self.id,
                    "model": config.selected_model,
                    "status": resp.status_code,
                    "usage": data.get("usage"),
                }
            },
        )
        return data

    def _raise_for_status(self, response: httpx.Response, model: str) -> None:
        status = response.status_code
        message = self._format_api_error(response, model)

        if status == 401:
            logger.error(
                "api_key_rejected",
                extra={"fields": {"provider": self.id, "status": status}},
            )
            raise AuthError(message, status_code=status, provider=self.id)

        if status == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            logger.warning(
                "rate_limit_detected" if retry_after else "rate_limit_detected_no_header",
                extra={"fields": {"provider": self.id, "retry_after_seconds": retry_after}},
            )
            raise RateLimitError(message, retry_after=retry_after, provider=self.id)

        if status >= 500:
            raise ServerError(message, status_code=status, provider=self.id)

        if status == 400:
            logger.error(
                "bad_request",
                extra={"fields": {"provider": self.id, "status": status, "body": response.text[:500]}},
            )
        raise ProviderRequestError(message, status_code=status, provider=self.id)

    def _format_api_error(self, response: httpx.Response, model: str) -> str:
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        error = payload.get("error") if isinstance(payload.get("error"), dict) else {}
        message = error.get("message") or payload.get("message") or response.text[:200]
        status = response.status_code
        if status == 401:
            return f"Authentication failed for {self.id} API. Check {self.settings.api_key_env}."
        if status == 404 and "model" in str(message).lower():
            return f"{self.id} model '{model}' not found or not accessible."
        return f"{self.id} API error ({status}) for model '{model}': {message}"

    def _log_retry(self, attempt: int, error: BaseException, delay_ms: int) -> None:
        logger.warning(
            "retry_attempt",
            extra={
                "fields": {
                    "provider": self.id,
                    "attempt": attempt,
                    "delay_ms": delay_ms,
                    "error": str(error),
                }
            },
        )

    def _log_final_error(self, error: BaseException, attempts: int) -> None:
        logger.error(
            "api_call_failed",
            extra={"fields": {"provider": self.id, "attempts": attempts, "error": str(error)}},
        )
