from __future__ import annotations

from abc import ABC, abstractmethod

from tictac.api.models import Participant, StateSnapshot


class ReplicationChannel(ABC):
    """Pushes session output to participants.

    Contract:
      - `welcome` goes only to the newly admitted participant, before the
        broadcast produced by the same admission.
      - `broadcast` goes to every participant listed in the snapshot.
      - calls for one session arrive already serialized (under the session lock);
        implementations must deliver them in call order and must not block on a
        slow participant.
    """

    @abstractmethod
    async def welcome(self, session_id: str, participant: Participant) -> None:
        raise NotImplementedError

    @abstractmethod
    async def broadcast(self, snapshot: StateSnapshot) -> None:
        raise NotImplementedError

    async def session_closed(self, session_id: str) -> None:
        """Release per-session resources. Optional."""


class FanoutChannel(ReplicationChannel):
    """Forward every call to several channels, in order."""

    def __init__(self, *channels: ReplicationChannel) -> None:
        self.channels = channels

    async def welcome(self, session_id: str, participant: Participant) -> None:
        for ch in self.channels:
            await ch.welcome(session_id, participant)

    async def broadcast(self, snapshot: StateSnapshot) -> None:
        for ch in self.channels:
            await ch.broadcast(snapshot)

    async def session_closed(self, session_id: str) -> None:
        for ch in self.channels:
            await ch.session_closed(session_id)
