"""Per-request context shared by the adapters."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field


class CancellationToken:
    """Cooperative cancellation flag checked between upstream reads.

    Nothing in the gateway cancels requests yet; an upstream that never
    finishes keeps its request pending until the token is cancelled.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class RequestContext:
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    token: CancellationToken = field(default_factory=CancellationToken)


__all__ = ["CancellationToken", "RequestContext"]
