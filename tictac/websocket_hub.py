from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import WebSocket

from tictac.api.models import Participant, StateSnapshot, state_payload, welcome_payload
from tictac.replication import ReplicationChannel

logger = logging.getLogger(__name__)


class Outbox:
    """Bounded per-connection send queue drained by its own writer task.

    `push` never blocks. If the queue overflows, or a send fails, the connection
    is closed and the reader side sees a disconnect (an implicit leave).
    """

    def __init__(self, participant_id: str, websocket: WebSocket, *, maxsize: int) -> None:
        self.participant_id = participant_id
        self._websocket = websocket
        self._queue: asyncio.Queue[dict[str, object]] = asyncio.Queue(maxsize=maxsize)
        self._writer: asyncio.Task[None] | None = None
        self._closer: asyncio.Task[None] | None = None
        self.dropped = False

    def start(self) -> None:
        self._writer = asyncio.create_task(self._pump(), name=f"outbox:{self.participant_id}")

    def push(self, payload: dict[str, object]) -> None:
        if self.dropped:
            return
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning("participant %s: outbox full, dropping connection", self.participant_id)
            self._drop()

    async def _pump(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                await self._websocket.send_json(payload)
            except Exception as e:
                logger.warning("participant %s: delivery failed: %s", self.participant_id, e)
                self._drop()
                return

    def _drop(self) -> None:
        self.dropped = True
        if self._writer is not None and self._writer is not asyncio.current_task():
            self._writer.cancel()
        self._closer = asyncio.create_task(self._close())

    async def _close(self) -> None:
        try:
            await self._websocket.close(code=1008)
        except RuntimeError:
            # Already closed by the client.
            logger.debug("participant %s: socket already closed", self.participant_id)

    async def stop(self) -> None:
        if self._writer is None:
            return
        self._writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._writer
        self._writer = None


class SessionWebSocketHub(ReplicationChannel):
    """In-process WebSocket fan-out keyed by participant id.

    Contract:
      - attach a connection with `attach(participant_id, websocket)` before admitting it.
      - the controller's welcome/broadcast calls only enqueue frames.

    Note: this is in-process only. Running several API replicas would need a
    shared channel (see `MailboxChannel`).
    """

    def __init__(self, *, outbox_size: int = 64) -> None:
        self._outbox_size = outbox_size
        self._outboxes: dict[str, Outbox] = {}

    def attach(self, participant_id: str, websocket: WebSocket) -> Outbox:
        outbox = Outbox(participant_id, websocket, maxsize=self._outbox_size)
        outbox.start()
        self._outboxes[participant_id] = outbox
        return outbox

    async def detach(self, participant_id: str) -> None:
        outbox = self._outboxes.pop(participant_id, None)
        if outbox is not None:
            await outbox.stop()

    def send_to(self, participant_id: str, payload: dict[str, object]) -> None:
        outbox = self._outboxes.get(participant_id)
        if outbox is not None:
            outbox.push(payload)

    async def welcome(self, session_id: str, participant: Participant) -> None:
        self.send_to(participant.participant_id, welcome_payload(session_id=session_id, participant=participant))

    async def broadcast(self, snapshot: StateSnapshot) -> None:
        payload = state_payload(snapshot)
        for pid in snapshot.participant_ids:
            self.send_to(pid, payload)
