from __future__ import annotations

import logging
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from tictac import __version__
from tictac.api.deps import get_hub, get_registry
from tictac.api.models import SessionListResponse, StateSnapshot, error_payload
from tictac.commands import Join, Leave, decode_command
from tictac.registry import SessionRegistry
from tictac.session import SessionController
from tictac.websocket_hub import SessionWebSocketHub

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def session_ws(
    websocket: WebSocket,
    registry: SessionRegistry = Depends(get_registry),
    hub: SessionWebSocketHub = Depends(get_hub),
) -> None:
    """One connection is one participant.

    The first frame must be `join`; after admission `move`, `reset` and `leave`
    go straight to the participant's session. A disconnect is an implicit leave.
    """

    await websocket.accept()
    participant_id = uuid4().hex
    hub.attach(participant_id, websocket)
    session: SessionController | None = None
    left = False

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
            raw = message.get("text")
            if raw is None:
                logger.warning("participant %s: non-text frame", participant_id)
                hub.send_to(participant_id, error_payload(code="malformed", message="Frames must be JSON text"))
                continue
            try:
                command = decode_command(raw)
            except ValidationError as e:
                logger.warning("participant %s: malformed frame: %s", participant_id, e.errors(include_url=False))
                hub.send_to(participant_id, error_payload(code="malformed", message="Malformed message"))
                continue

            if session is None:
                if not isinstance(command, Join):
                    hub.send_to(participant_id, error_payload(code="not_joined", message="Send join first"))
                    continue
                session, _ = await registry.assign(participant_id, command.name)
                continue

            if isinstance(command, Join):
                hub.send_to(participant_id, error_payload(code="already_joined", message="Already joined"))
                continue
            if isinstance(command, Leave):
                left = True
                break
            await session.handle(participant_id, command)
    except WebSocketDisconnect:
        logger.debug("participant %s: disconnected", participant_id)
    finally:
        if session is not None:
            await registry.release(session.session_id, participant_id)
        await hub.detach(participant_id)

    if left:
        await websocket.close()


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/info")
async def info() -> dict[str, object]:
    return {"name": "tictac-sync", "version": __version__, "games": ["tic-tac-toe"], "realtime": True}


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions_route(registry: SessionRegistry = Depends(get_registry)) -> SessionListResponse:
    return SessionListResponse(sessions=[s.state for s in registry.list_sessions()])


@router.get("/sessions/{session_id}", response_model=StateSnapshot)
async def get_session_route(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> StateSnapshot:
    session = registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session.state
