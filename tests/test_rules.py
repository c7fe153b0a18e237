from __future__ import annotations

import itertools

import pytest

from tictac.api.models import EMPTY, GameState, Marker, Participant, Phase
from tictac.rules import WIN_LINES, evaluate_winner, is_full, is_legal_move, move_rejection


def _board(rows: str) -> list[str]:
    """Build a board from a 9-char string: X, O, or '.' for empty."""

    assert len(rows) == 9
    return [EMPTY if ch == "." else ch for ch in rows]


def _line_owner(board: list[str]) -> str | None:
    # Independent oracle: scan rows, then columns, then diagonals by coordinates.
    grid = [board[r * 3 : r * 3 + 3] for r in range(3)]
    lines = [grid[r] for r in range(3)]
    lines += [[grid[r][c] for r in range(3)] for c in range(3)]
    lines += [[grid[i][i] for i in range(3)], [grid[i][2 - i] for i in range(3)]]
    for line in lines:
        if line[0] != EMPTY and line.count(line[0]) == 3:
            return line[0]
    return None


def test_eight_fixed_lines() -> None:
    assert len(WIN_LINES) == 8
    assert len(set(WIN_LINES)) == 8


@pytest.mark.parametrize("line", WIN_LINES)
@pytest.mark.parametrize("marker", list(Marker))
def test_every_winning_line_is_detected(line: tuple[int, int, int], marker: Marker) -> None:
    board = [EMPTY] * 9
    for idx in line:
        board[idx] = marker.value
    assert evaluate_winner(board) == marker


def test_exhaustive_boards_match_oracle() -> None:
    # All 3^9 fillings, including unreachable ones; must never crash.
    for cells in itertools.product((EMPTY, "X", "O"), repeat=9):
        board = list(cells)
        expected = _line_owner(board)
        got = evaluate_winner(board)
        assert (got is None) == (expected is None)
        if got is not None:
            assert got.value == expected


def test_first_line_in_order_wins_when_several_match() -> None:
    # Top row X and bottom row O cannot happen in play, but the answer is fixed.
    assert evaluate_winner(_board("XXX...OOO")) == Marker.x
    assert evaluate_winner(_board("OOO...XXX")) == Marker.o


def test_draw_board() -> None:
    board = _board("XOXXOOOXX")
    assert evaluate_winner(board) is None
    assert is_full(board)


def test_is_full() -> None:
    assert not is_full([EMPTY] * 9)
    assert not is_full(_board("XOXXOOOX."))
    assert is_full(_board("XOXOXOXOX"))


def _active_state() -> GameState:
    return GameState(
        session_id="s",
        participants=[
            Participant(participant_id="a", name="Alice", marker=Marker.x),
            Participant(participant_id="b", name="Bob", marker=Marker.o),
        ],
        phase=Phase.active,
        turn_holder="a",
    )


def test_legal_move() -> None:
    state = _active_state()
    assert is_legal_move(state, "a", 0)
    assert is_legal_move(state, "a", 8)


@pytest.mark.parametrize(
    ("participant_id", "position", "reason"),
    [
        ("b", 0, "not your turn"),
        ("zed", 0, "not seated"),
        ("a", -1, "off the board"),
        ("a", 9, "off the board"),
    ],
)
def test_illegal_moves(participant_id: str, position: int, reason: str) -> None:
    state = _active_state()
    assert not is_legal_move(state, participant_id, position)
    assert reason in (move_rejection(state, participant_id, position) or "")


def test_occupied_cell_is_illegal() -> None:
    state = _active_state()
    state.board[4] = "O"
    assert "already taken" in (move_rejection(state, "a", 4) or "")


@pytest.mark.parametrize("phase", [Phase.waiting, Phase.concluded])
def test_no_moves_outside_active_phase(phase: Phase) -> None:
    state = _active_state()
    state.phase = phase
    assert "not allowed in phase" in (move_rejection(state, "a", 0) or "")


def test_legality_check_does_not_mutate() -> None:
    state = _active_state()
    before = state.model_dump()
    is_legal_move(state, "b", 3)
    is_legal_move(state, "a", 3)
    assert state.model_dump() == before
