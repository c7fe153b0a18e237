from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from uuid import uuid4

from tictac.api.models import Participant
from tictac.replication import ReplicationChannel
from tictac.session import SessionClosed, SessionController, SessionFull

logger = logging.getLogger(__name__)


def _new_session_id() -> str:
    return uuid4().hex


class SessionRegistry:
    """Creates, routes to, and destroys sessions.

    Sessions live only in this process. A session is destroyed as soon as its
    last participant departs.

    The registry lock only covers seat assignment and destruction; moves and
    resets go straight to the session and never wait on other sessions.
    """

    def __init__(self, *, channel: ReplicationChannel, id_factory: Callable[[], str] = _new_session_id) -> None:
        self._channel = channel
        self._id_factory = id_factory
        self._sessions: dict[str, SessionController] = {}
        self._lock = asyncio.Lock()

    def get(self, session_id: str) -> SessionController | None:
        return self._sessions.get(session_id)

    def list_sessions(self) -> list[SessionController]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    async def assign(self, participant_id: str, requested_name: str | None = None) -> tuple[SessionController, Participant]:
        """Seat a participant in the first session with a free seat, creating one if needed."""

        async with self._lock:
            for session in list(self._sessions.values()):
                if not session.has_free_seat():
                    continue
                try:
                    participant = await session.admit(participant_id, requested_name)
                except (SessionFull, SessionClosed):
                    continue
                return session, participant

            session = SessionController(session_id=self._id_factory(), channel=self._channel)
            self._sessions[session.session_id] = session
            logger.info("session %s: created", session.session_id)
            participant = await session.admit(participant_id, requested_name)
            return session, participant

    async def release(self, session_id: str, participant_id: str) -> None:
        """Remove a participant; destroy the session if it is now empty."""

        session = self._sessions.get(session_id)
        if session is None:
            return
        await session.remove(participant_id)

        async with self._lock:
            if session.is_empty() and self._sessions.get(session_id) is session:
                await self._destroy(session)

    async def close_all(self) -> None:
        async with self._lock:
            for session in list(self._sessions.values()):
                await self._destroy(session)

    async def _destroy(self, session: SessionController) -> None:
        # Caller holds self._lock.
        self._sessions.pop(session.session_id, None)
        await session.close()
        logger.info("session %s: destroyed", session.session_id)
