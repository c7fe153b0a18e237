from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field, StrictInt, TypeAdapter, computed_field, model_validator


BOARD_SIZE = 9
MAX_PARTICIPANTS = 2
EMPTY = ""


class Marker(StrEnum):
    x = "X"
    o = "O"


class Phase(StrEnum):
    waiting = "waiting"
    active = "active"
    concluded = "concluded"


class Outcome(StrEnum):
    undecided = "undecided"
    x_wins = "x_wins"
    o_wins = "o_wins"
    draw = "draw"

    @classmethod
    def for_winner(cls, marker: Marker) -> "Outcome":
        return cls.x_wins if marker == Marker.x else cls.o_wins

    @property
    def winning_marker(self) -> Marker | None:
        if self == Outcome.x_wins:
            return Marker.x
        if self == Outcome.o_wins:
            return Marker.o
        return None


CELL_VALUES = frozenset({EMPTY, Marker.x.value, Marker.o.value})


def empty_board() -> list[str]:
    return [EMPTY] * BOARD_SIZE


class Participant(BaseModel):
    model_config = ConfigDict(frozen=True)

    participant_id: str
    name: str
    marker: Marker


class _StateView(Protocol):
    board: Sequence[str]
    participants: Sequence[Participant]
    turn_holder: str | None
    phase: Phase
    outcome: Outcome


def invariant_violations(state: _StateView) -> list[str]:
    """Return every broken GameState invariant (empty list when consistent)."""

    from tictac.rules import evaluate_winner, is_full

    problems: list[str] = []

    if len(state.board) != BOARD_SIZE:
        problems.append(f"board must have {BOARD_SIZE} cells, has {len(state.board)}")
    bad_cells = sorted({c for c in state.board if c not in CELL_VALUES})
    if bad_cells:
        problems.append(f"board holds unknown cell values {bad_cells}")

    ids = [p.participant_id for p in state.participants]
    if len(ids) > MAX_PARTICIPANTS:
        problems.append(f"at most {MAX_PARTICIPANTS} participants allowed, got {len(ids)}")
    if len(set(ids)) != len(ids):
        problems.append("participant ids must be unique")
    markers = [p.marker for p in state.participants]
    if len(set(markers)) != len(markers):
        problems.append("participants must hold distinct markers")
    if markers != sorted(markers, key=list(Marker).index):
        problems.append("participants must be listed X before O")

    if state.phase == Phase.active:
        if len(ids) != MAX_PARTICIPANTS:
            problems.append("active phase requires two participants")
        if state.turn_holder not in ids:
            problems.append("active phase requires a seated turn holder")
    elif state.turn_holder is not None:
        problems.append(f"turn holder must be empty while {state.phase.value}")

    if state.phase == Phase.waiting and any(c != EMPTY for c in state.board):
        problems.append("board must be empty while waiting")
    if state.phase == Phase.concluded and state.outcome == Outcome.undecided:
        problems.append("concluded phase requires a decided outcome")
    if state.phase != Phase.concluded and state.outcome != Outcome.undecided:
        problems.append(f"outcome must be undecided while {state.phase.value}")

    if not problems:
        winner = evaluate_winner(state.board)
        if winner is not None and state.outcome != Outcome.for_winner(winner):
            problems.append(f"board has a line for {winner.value} but outcome is {state.outcome.value}")
        if winner is None and is_full(state.board) and state.outcome != Outcome.draw:
            problems.append("full board without a line must be a draw")
        if state.outcome.winning_marker is not None and winner != state.outcome.winning_marker:
            problems.append(f"outcome {state.outcome.value} has no matching line on the board")

    return problems


class StateSnapshot(BaseModel):
    """Immutable, self-consistent copy of one session's state.

    Building a snapshot re-checks every invariant, so an inconsistent state can
    never be handed to a replication channel.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    version: int
    board: tuple[str, ...]
    participants: tuple[Participant, ...]
    turn_holder: str | None
    phase: Phase
    outcome: Outcome

    @model_validator(mode="after")
    def _check_invariants(self) -> "StateSnapshot":
        problems = invariant_violations(self)
        if problems:
            raise ValueError("; ".join(problems))
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def winner_id(self) -> str | None:
        marker = self.outcome.winning_marker
        if marker is None:
            return None
        return next((p.participant_id for p in self.participants if p.marker == marker), None)

    @property
    def participant_ids(self) -> list[str]:
        return [p.participant_id for p in self.participants]


class GameState(BaseModel):
    """Canonical, server-owned state of one session.

    Only `SessionController` mutates it; everything else reads snapshots.
    """

    session_id: str
    board: list[str] = Field(default_factory=empty_board)
    participants: list[Participant] = Field(default_factory=list)
    turn_holder: str | None = None
    phase: Phase = Phase.waiting
    outcome: Outcome = Outcome.undecided

    # Bumped once per broadcast.
    version: int = 0

    def participant(self, participant_id: str) -> Participant | None:
        return next((p for p in self.participants if p.participant_id == participant_id), None)

    def holder_of(self, marker: Marker) -> Participant | None:
        return next((p for p in self.participants if p.marker == marker), None)

    def free_marker(self) -> Marker:
        taken = {p.marker for p in self.participants}
        for marker in Marker:
            if marker not in taken:
                return marker
        raise ValueError("No free marker")

    def seat(self, participant: Participant) -> None:
        """Add a participant, keeping the X holder first in the list."""

        self.participants.append(participant)
        self.participants.sort(key=lambda p: list(Marker).index(p.marker))

    def clear_round(self) -> None:
        self.board = empty_board()
        self.outcome = Outcome.undecided
        self.turn_holder = None

    def check_invariants(self) -> None:
        problems = invariant_violations(self)
        if problems:
            raise ValueError("; ".join(problems))

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot.model_validate(self.model_dump())


# ---- Wire messages ----


class JoinMessage(BaseModel):
    type: Literal["join"]
    name: str | None = None


class MoveMessage(BaseModel):
    type: Literal["move"]
    position: StrictInt


class ResetMessage(BaseModel):
    type: Literal["reset"]


class LeaveMessage(BaseModel):
    type: Literal["leave"]


InboundMessage = Annotated[
    JoinMessage | MoveMessage | ResetMessage | LeaveMessage,
    Field(discriminator="type"),
]

inbound_adapter: TypeAdapter[JoinMessage | MoveMessage | ResetMessage | LeaveMessage] = TypeAdapter(InboundMessage)


class WelcomeMessage(BaseModel):
    type: Literal["welcome"] = "welcome"
    session_id: str
    participant_id: str
    marker: Marker


class StateMessage(BaseModel):
    type: Literal["state"] = "state"
    session_id: str
    version: int
    board: list[str]
    participants: list[Participant]
    turn_holder: str | None
    phase: Phase
    outcome: Outcome
    winner_id: str | None = None


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    code: str
    message: str


def welcome_payload(*, session_id: str, participant: Participant) -> dict[str, object]:
    msg = WelcomeMessage(session_id=session_id, participant_id=participant.participant_id, marker=participant.marker)
    return msg.model_dump(mode="json")


def state_payload(snapshot: StateSnapshot) -> dict[str, object]:
    return StateMessage.model_validate(snapshot.model_dump()).model_dump(mode="json")


def error_payload(*, code: str, message: str) -> dict[str, object]:
    return ErrorMessage(code=code, message=message).model_dump(mode="json")


class SessionListResponse(BaseModel):
    sessions: list[StateSnapshot]
