from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import cache

from tictac.api.models import EMPTY, GameState, Phase


class MoveRejected(ValueError):
    """A move that breaks the rules. Never surfaced to the participant."""


@dataclass(frozen=True, slots=True)
class MoveContext:
    """Inputs available to validators.

    Keep this tight so we can safely log it.
    """

    participant_id: str
    position: int


class MoveValidator(ABC):
    """A small, composable validation unit for an incoming move."""

    @abstractmethod
    def validate(self, *, ctx: MoveContext, state: GameState) -> None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class PhaseValidator(MoveValidator):
    """Moves are only accepted while a round is in progress."""

    allowed_phases: frozenset[Phase] = frozenset({Phase.active})

    def validate(self, *, ctx: MoveContext, state: GameState) -> None:
        if state.phase not in self.allowed_phases:
            raise MoveRejected(f"moves not allowed in phase '{state.phase.value}'")


@dataclass(frozen=True, slots=True)
class TurnHolderValidator(MoveValidator):
    def validate(self, *, ctx: MoveContext, state: GameState) -> None:
        if state.participant(ctx.participant_id) is None:
            raise MoveRejected("participant not seated in this session")
        if state.turn_holder != ctx.participant_id:
            raise MoveRejected(f"not your turn (turn holder is {state.turn_holder})")


@dataclass(frozen=True, slots=True)
class PositionValidator(MoveValidator):
    def validate(self, *, ctx: MoveContext, state: GameState) -> None:
        from tictac.rules import in_range

        if not in_range(ctx.position):
            raise MoveRejected(f"position {ctx.position} is off the board")


@dataclass(frozen=True, slots=True)
class VacantCellValidator(MoveValidator):
    def validate(self, *, ctx: MoveContext, state: GameState) -> None:
        if state.board[ctx.position] != EMPTY:
            raise MoveRejected(f"cell {ctx.position} is already taken by {state.board[ctx.position]}")


@dataclass(frozen=True, slots=True)
class ValidatorPipeline:
    validators: tuple[MoveValidator, ...]

    def validate(self, *, ctx: MoveContext, state: GameState) -> None:
        for v in self.validators:
            v.validate(ctx=ctx, state=state)


@cache
def move_pipeline() -> ValidatorPipeline:
    # Order matters: the position check must run before the cell lookup.
    return ValidatorPipeline(
        validators=(
            PhaseValidator(),
            TurnHolderValidator(),
            PositionValidator(),
            VacantCellValidator(),
        )
    )
