"""Store holding collaboration sessions for the duration of one round."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Sequence

from devcrew.agents.base import Agent
from devcrew.core.errors import ConfigurationError, SessionBusyError
from devcrew.core.models import CollaborationSession, CollaborationType

logger = logging.getLogger(__name__)


class SessionStore:
    """Sessions keyed by id; an id is held by exactly one in-flight round."""

    def __init__(self) -> None:
        self._sessions: Dict[str, CollaborationSession] = {}
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def open(
        self,
        session_id: str,
        protocol: CollaborationType,
        participants: Sequence[Agent],
    ) -> AsyncIterator[CollaborationSession]:
        """Create the session record and delete it when the round exits."""
        if not session_id:
            raise ConfigurationError("A collaboration session id is required")
        if not participants:
            raise ConfigurationError("A collaboration session needs at least one participant")

        async with self._lock:
            if session_id in self._sessions:
                raise SessionBusyError(session_id)
            session = CollaborationSession(
                session_id=session_id,
                protocol=protocol,
                participants=list(participants),
            )
            self._sessions[session_id] = session
        logger.debug("Opened %s session %s", protocol.value, session_id)

        try:
            yield session
        finally:
            self._sessions.pop(session_id, None)
            logger.debug("Closed session %s", session_id)

    def get(self, session_id: str) -> Optional[CollaborationSession]:
        return self._sessions.get(session_id)

    def list_sessions(self) -> List[CollaborationSession]:
        return list(self._sessions.values())

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
