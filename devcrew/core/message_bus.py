"""Lightweight in-memory bus broadcasting collaboration events to observers."""
from __future__ import annotations

import asyncio
import itertools
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Optional

from .models import utcnow


@dataclass(slots=True)
class CollaborationEvent:
    """Event emitted while a collaboration round runs.

    ``kind`` is one of ``session_started``, ``message`` or ``session_ended``.
    """

    kind: str
    session_id: str
    sender_id: Optional[str] = None
    recipient_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)


class CollaborationEventBus:
    """Async hub delivering every published event to each subscriber queue."""

    def __init__(self) -> None:
        self._subscribers: Dict[int, asyncio.Queue[CollaborationEvent]] = {}
        self._ids = itertools.count()
        self._lock = asyncio.Lock()

    async def publish(self, event: CollaborationEvent) -> None:
        for queue in list(self._subscribers.values()):
            await queue.put(event)

    async def message(
        self,
        session_id: str,
        sender_id: str,
        recipient_id: str,
        content: str,
        **payload: Any,
    ) -> None:
        await self.publish(
            CollaborationEvent(
                kind="message",
                session_id=session_id,
                sender_id=sender_id,
                recipient_id=recipient_id,
                payload={"content": content, **payload},
            )
        )

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue[CollaborationEvent]]:
        """Context manager yielding a queue that receives events until exit."""
        queue: asyncio.Queue[CollaborationEvent] = asyncio.Queue()
        async with self._lock:
            token = next(self._ids)
            self._subscribers[token] = queue
        try:
            yield queue
        finally:
            async with self._lock:
                self._subscribers.pop(token, None)
