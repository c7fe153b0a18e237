from __future__ import annotations

import asyncio
import logging

from tictac.api.models import MAX_PARTICIPANTS, GameState, Marker, Outcome, Participant, Phase, StateSnapshot
from tictac.commands import Command, Join, Leave, Move, Reset
from tictac.fsm import SessionFSM
from tictac.replication import ReplicationChannel
from tictac.rules import evaluate_winner, is_full, move_rejection

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 32

# Marker that opens every round.
FIRST_MOVER = Marker.x


class SessionFull(ValueError):
    """Both seats are taken; the registry should route the participant elsewhere."""


class SessionClosed(ValueError):
    """The session was destroyed and accepts no more participants."""


def _display_name(requested: str | None, *, seat: int) -> str:
    name = (requested or "").strip()[:MAX_NAME_LENGTH]
    return name or f"Player {seat}"


class SessionController:
    """Sole mutator of one session's GameState.

    Every mutating operation runs under a per-session asyncio.Lock covering the
    whole read-validate-mutate-broadcast sequence, and ends with exactly one
    explicit broadcast of a full snapshot. Rejected moves and no-op requests do
    not broadcast.
    """

    def __init__(self, *, session_id: str, channel: ReplicationChannel) -> None:
        self.session_id = session_id
        self._state = GameState(session_id=session_id)
        self._channel = channel
        self._lock = asyncio.Lock()
        self.closed = False

    @property
    def state(self) -> StateSnapshot:
        return self._state.snapshot()

    @property
    def participant_count(self) -> int:
        return len(self._state.participants)

    def has_free_seat(self) -> bool:
        return not self.closed and self.participant_count < MAX_PARTICIPANTS

    def is_empty(self) -> bool:
        return self.participant_count == 0

    async def handle(self, participant_id: str, command: Command) -> None:
        if isinstance(command, Join):
            await self.admit(participant_id, command.name)
        elif isinstance(command, Move):
            await self.submit_move(participant_id, command.position)
        elif isinstance(command, Reset):
            await self.request_reset()
        elif isinstance(command, Leave):
            await self.remove(participant_id)
        else:
            raise ValueError(f"Unknown command: {command!r}")

    async def admit(self, participant_id: str, requested_name: str | None = None) -> Participant:
        async with self._lock:
            state = self._state
            if self.closed:
                raise SessionClosed(f"Session {self.session_id} is closed")
            if len(state.participants) >= MAX_PARTICIPANTS:
                raise SessionFull(f"Session {self.session_id} is full")
            if state.participant(participant_id) is not None:
                raise ValueError(f"Participant {participant_id} already admitted")

            participant = Participant(
                participant_id=participant_id,
                name=_display_name(requested_name, seat=len(state.participants) + 1),
                marker=state.free_marker(),
            )
            state.seat(participant)
            logger.info(
                "session %s: admitted %s (%r) as %s",
                self.session_id,
                participant_id,
                participant.name,
                participant.marker.value,
            )

            if len(state.participants) == MAX_PARTICIPANTS:
                fsm = SessionFSM(state)
                fsm.fill_seats()
                fsm.sync_phase_to_model()
                state.turn_holder = self._first_mover_id()
                logger.info("session %s: round started, %s to move", self.session_id, state.turn_holder)

            await self._channel.welcome(self.session_id, participant)
            await self._publish()
            return participant

    async def remove(self, participant_id: str) -> None:
        async with self._lock:
            state = self._state
            participant = state.participant(participant_id)
            if participant is None:
                logger.debug("session %s: ignored removal of unknown %s", self.session_id, participant_id)
                return

            state.participants.remove(participant)
            logger.info("session %s: %s departed", self.session_id, participant_id)

            if len(state.participants) < MAX_PARTICIPANTS:
                if state.phase != Phase.waiting:
                    fsm = SessionFSM(state)
                    fsm.vacate()
                    fsm.sync_phase_to_model()
                state.clear_round()

            await self._publish()

    async def submit_move(self, participant_id: str, position: int) -> bool:
        """Apply a move if legal. Returns whether it was applied.

        Illegal moves are dropped silently: no state change, no broadcast, no
        error frame. The next snapshot is what the client reconciles against.
        """

        async with self._lock:
            state = self._state
            reason = move_rejection(state, participant_id, position)
            if reason is not None:
                logger.debug(
                    "session %s: ignored move by %s at %s: %s", self.session_id, participant_id, position, reason
                )
                return False

            participant = state.participant(participant_id)
            if participant is None:
                return False
            state.board[position] = participant.marker.value

            fsm = SessionFSM(state)
            winner = evaluate_winner(state.board)
            if winner is not None:
                state.outcome = Outcome.for_winner(winner)
            elif is_full(state.board):
                state.outcome = Outcome.draw

            if state.outcome != Outcome.undecided:
                fsm.conclude()
                state.turn_holder = None
                logger.info("session %s: round concluded (%s)", self.session_id, state.outcome.value)
            else:
                state.turn_holder = self._opponent_id(participant_id)
            fsm.sync_phase_to_model()

            await self._publish()
            return True

    async def request_reset(self) -> bool:
        async with self._lock:
            state = self._state
            if state.phase != Phase.concluded or len(state.participants) != MAX_PARTICIPANTS:
                logger.debug("session %s: ignored reset in phase %s", self.session_id, state.phase.value)
                return False

            fsm = SessionFSM(state)
            fsm.restart()
            fsm.sync_phase_to_model()
            state.clear_round()
            state.turn_holder = self._first_mover_id()
            logger.info("session %s: round restarted, %s to move", self.session_id, state.turn_holder)

            await self._publish()
            return True

    async def close(self) -> None:
        async with self._lock:
            self.closed = True
        await self._channel.session_closed(self.session_id)

    def _first_mover_id(self) -> str:
        holder = self._state.holder_of(FIRST_MOVER)
        if holder is None:
            raise ValueError(f"No participant holds {FIRST_MOVER.value}")
        return holder.participant_id

    def _opponent_id(self, participant_id: str) -> str:
        return next(p.participant_id for p in self._state.participants if p.participant_id != participant_id)

    async def _publish(self) -> None:
        # Caller holds self._lock.
        self._state.version += 1
        snapshot = self._state.snapshot()
        logger.debug(
            "session %s: broadcast v%d to %d participant(s)",
            self.session_id,
            snapshot.version,
            len(snapshot.participants),
        )
        await self._channel.broadcast(snapshot)
