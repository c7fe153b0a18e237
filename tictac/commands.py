"""Inbound participant commands.

Wire frames are decoded once into one of these variants; `SessionController.handle`
dispatches on them.
"""

from __future__ import annotations

from dataclasses import dataclass

from tictac.api.models import JoinMessage, LeaveMessage, MoveMessage, ResetMessage, inbound_adapter


@dataclass(frozen=True, slots=True)
class Join:
    name: str | None = None


@dataclass(frozen=True, slots=True)
class Move:
    position: int


@dataclass(frozen=True, slots=True)
class Reset:
    pass


@dataclass(frozen=True, slots=True)
class Leave:
    pass


Command = Join | Move | Reset | Leave


def decode_command(raw: str | bytes) -> Command:
    """Decode one JSON frame.

    Raises pydantic.ValidationError (a ValueError) for malformed JSON, unknown
    `type` values, or a non-integer position.
    """

    msg = inbound_adapter.validate_json(raw)
    if isinstance(msg, JoinMessage):
        return Join(name=msg.name)
    if isinstance(msg, MoveMessage):
        return Move(position=msg.position)
    if isinstance(msg, ResetMessage):
        return Reset()
    if isinstance(msg, LeaveMessage):
        return Leave()
    raise ValueError(f"Unknown message: {msg!r}")
