from __future__ import annotations

import asyncio
from typing import Any, Callable, TypeVar

from grid_connector.core.payloads import BackendKind, RawPayload

T = TypeVar("T")


async def run_blocking(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking SDK call off the event loop; the caller suspends only here."""
    return await asyncio.to_thread(fn, *args, **kwargs)


class BackendAdapter:
    """One raw request per ``issue`` call; no retries."""

    kind: BackendKind

    async def issue(self, query: Any) -> RawPayload:
        raise NotImplementedError

    async def connect(self) -> None:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.aclose()
        return False
