from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass
from typing import Mapping, Sequence, cast

import redis
import redis.asyncio

from tictac.api.models import Participant, StateSnapshot, state_payload, welcome_payload
from tictac.replication import ReplicationChannel

logger = logging.getLogger(__name__)

MAILBOX_PREFIX = "mailbox:"


@dataclass(frozen=True, slots=True)
class Mailbox:
    session_id: str
    participant_id: str

    @property
    def key(self) -> str:
        return f"{MAILBOX_PREFIX}{self.session_id}:{self.participant_id}"


async def publish_many(
    *,
    r: redis.asyncio.Redis,
    entries: Sequence[tuple[str, Mapping[str, str]]],
    maxlen: int | None = None,
) -> list[str]:
    """Append entries to their streams, one XADD each, in order."""

    ids: list[str] = []
    for key, fields in entries:
        stream_id = await r.xadd(key, {str(k): str(v) for k, v in fields.items()}, maxlen=maxlen, approximate=True)
        ids.append(cast(str, stream_id))
    return ids


def _fields(payload: dict[str, object]) -> dict[str, str]:
    # Streams carry flat string fields; the full frame travels as JSON.
    return {"type": str(payload["type"]), "payload": json.dumps(payload)}


@dataclass(frozen=True, slots=True)
class _Publish:
    entries: list[tuple[str, dict[str, str]]]


@dataclass(frozen=True, slots=True)
class _Cleanup:
    session_id: str


class MailboxChannel(ReplicationChannel):
    """Mirror welcome/state frames into per-participant Redis Streams.

    Lets out-of-process consumers follow a session in order. The channel only
    enqueues; a single writer task talks to Redis, so a slow Redis never holds
    a session lock. A Redis failure is logged and never interrupts the session.
    """

    def __init__(self, *, r: redis.asyncio.Redis, maxlen: int = 256, queue_size: int = 1024) -> None:
        self._r = r
        self._maxlen = maxlen
        self._queue: asyncio.Queue[_Publish | _Cleanup] = asyncio.Queue(maxsize=queue_size)
        self._writer: asyncio.Task[None] | None = None

    async def welcome(self, session_id: str, participant: Participant) -> None:
        key = Mailbox(session_id=session_id, participant_id=participant.participant_id).key
        self._enqueue(_Publish([(key, _fields(welcome_payload(session_id=session_id, participant=participant)))]))

    async def broadcast(self, snapshot: StateSnapshot) -> None:
        fields = _fields(state_payload(snapshot))
        entries = [
            (Mailbox(session_id=snapshot.session_id, participant_id=pid).key, fields) for pid in snapshot.participant_ids
        ]
        if entries:
            self._enqueue(_Publish(entries))

    async def session_closed(self, session_id: str) -> None:
        self._enqueue(_Cleanup(session_id))

    async def flush(self) -> None:
        """Wait until every queued operation has been attempted."""

        await self._queue.join()

    async def stop(self) -> None:
        if self._writer is None:
            return
        self._writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._writer
        self._writer = None

    def _enqueue(self, op: _Publish | _Cleanup) -> None:
        if self._writer is None or self._writer.done():
            self._writer = asyncio.create_task(self._drain(), name="mailbox-writer")
        try:
            self._queue.put_nowait(op)
        except asyncio.QueueFull:
            logger.warning("mailbox queue full, dropping %s", type(op).__name__)

    async def _drain(self) -> None:
        while True:
            op = await self._queue.get()
            try:
                if isinstance(op, _Publish):
                    await publish_many(r=self._r, entries=op.entries, maxlen=self._maxlen)
                else:
                    await self._delete_session_streams(op.session_id)
            except redis.RedisError as e:
                logger.warning("mailbox %s failed: %s", type(op).__name__, e)
            finally:
                self._queue.task_done()

    async def _delete_session_streams(self, session_id: str) -> None:
        keys = [key async for key in self._r.scan_iter(match=f"{MAILBOX_PREFIX}{session_id}:*")]
        if keys:
            await self._r.delete(*keys)
