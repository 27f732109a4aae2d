"""Event channel primitives used to stream run output back to callers.

Classes:
    EventChannel: Protocol for the one-way reporting surface fed by the pipeline controller.
    QueueEventChannel: asyncio queue backed channel consumed by the HTTP and WebSocket routes.

Functions:
    to_wire(event): Render an event as a camelCase, JSON-ready dict.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Protocol

from sentence_atlas.schemas import RunEvent

_CLOSED = object()


class EventChannel(Protocol):
    def emit(self, event: RunEvent) -> None: ...


class QueueEventChannel:
    """Delivers events in emit order until closed.

    ``emit`` never blocks or suspends, so the controller cannot be interleaved with a newer run while
    it is reporting.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    def emit(self, event: RunEvent) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def stream(self) -> AsyncIterator[RunEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


def to_wire(event: RunEvent) -> dict[str, Any]:
    return event.model_dump(mode="json", by_alias=True, exclude_none=True)
