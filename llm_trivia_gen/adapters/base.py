from __future__ import annotations

import asyncio
from typing import Protocol, Union

from ..core.types import RawProviderResponse


class ProviderClient(Protocol):
    id: str

    async def call(
        self, prompt: str, cancel_event: Union[asyncio.Event, None] = None
    ) -> RawProviderResponse: ...
