"""Pure tic-tac-toe rules.

Nothing here mutates state or does I/O; `SessionController` decides what to do
with the answers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from tictac.api.models import BOARD_SIZE, EMPTY, Marker

if TYPE_CHECKING:
    from tictac.api.models import GameState


# Enumeration order matters: the first matching line wins.
WIN_LINES: tuple[tuple[int, int, int], ...] = (
    # rows
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    # columns
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    # diagonals
    (0, 4, 8),
    (2, 4, 6),
)


def evaluate_winner(board: Sequence[str]) -> Marker | None:
    for a, b, c in WIN_LINES:
        if board[a] != EMPTY and board[a] == board[b] == board[c]:
            return Marker(board[a])
    return None


def is_full(board: Sequence[str]) -> bool:
    return all(cell != EMPTY for cell in board)


def move_rejection(state: "GameState", participant_id: str, position: int) -> str | None:
    """Return why a move is illegal, or None when it may be applied."""

    from tictac.turn_processing.validators import MoveContext, MoveRejected, move_pipeline

    try:
        move_pipeline().validate(ctx=MoveContext(participant_id=participant_id, position=position), state=state)
    except MoveRejected as e:
        return str(e)
    return None


def is_legal_move(state: "GameState", participant_id: str, position: int) -> bool:
    return move_rejection(state, participant_id, position) is None


def in_range(position: int) -> bool:
    return 0 <= position < BOARD_SIZE
