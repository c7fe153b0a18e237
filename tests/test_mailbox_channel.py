from __future__ import annotations

import asyncio
import json

import fakeredis
import pytest

from tictac.api.models import Phase
from tictac.session import SessionController
from tictac.streams import Mailbox, MailboxChannel


@pytest.fixture()
def r() -> fakeredis.FakeAsyncRedis:
    return fakeredis.FakeAsyncRedis(decode_responses=True)


async def _frames(r: fakeredis.FakeAsyncRedis, session_id: str, participant_id: str) -> list[dict]:
    key = Mailbox(session_id=session_id, participant_id=participant_id).key
    return [json.loads(fields["payload"]) for _, fields in await r.xrange(key)]


@pytest.mark.asyncio
async def test_mailboxes_follow_the_session_in_order(r: fakeredis.FakeAsyncRedis) -> None:
    channel = MailboxChannel(r=r)
    controller = SessionController(session_id="s1", channel=channel)
    await controller.admit("A", "Alice")
    await controller.admit("B", "Bob")
    await controller.submit_move("A", 4)
    await channel.flush()

    a_frames = await _frames(r, "s1", "A")
    assert [f["type"] for f in a_frames] == ["welcome", "state", "state", "state"]
    assert a_frames[0]["marker"] == "X"
    assert [f["version"] for f in a_frames[1:]] == [1, 2, 3]
    assert a_frames[-1]["board"][4] == "X"

    b_frames = await _frames(r, "s1", "B")
    assert [f["type"] for f in b_frames] == ["welcome", "state", "state"]
    assert b_frames[1]["phase"] == Phase.active.value
    await channel.stop()


@pytest.mark.asyncio
async def test_stream_fields_carry_type(r: fakeredis.FakeAsyncRedis) -> None:
    channel = MailboxChannel(r=r)
    controller = SessionController(session_id="s1", channel=channel)
    await controller.admit("A", "Alice")
    await channel.flush()

    entries = await r.xrange(Mailbox(session_id="s1", participant_id="A").key)
    assert [fields["type"] for _, fields in entries] == ["welcome", "state"]
    await channel.stop()


@pytest.mark.asyncio
async def test_mailboxes_are_deleted_with_the_session(r: fakeredis.FakeAsyncRedis) -> None:
    channel = MailboxChannel(r=r)
    keep = SessionController(session_id="s2", channel=channel)
    await keep.admit("C", "Cleo")

    controller = SessionController(session_id="s1", channel=channel)
    await controller.admit("A", "Alice")
    await controller.admit("B", "Bob")
    await controller.close()
    await channel.flush()

    assert await r.exists(Mailbox(session_id="s1", participant_id="A").key) == 0
    assert await r.exists(Mailbox(session_id="s1", participant_id="B").key) == 0
    assert await r.exists(Mailbox(session_id="s2", participant_id="C").key) == 1
    await channel.stop()


@pytest.mark.asyncio
async def test_redis_failure_does_not_break_the_session(
    r: fakeredis.FakeAsyncRedis, monkeypatch: pytest.MonkeyPatch
) -> None:
    import redis

    async def _boom(*args, **kwargs):  # type: ignore[no-untyped-def]
        raise redis.ConnectionError("redis down")

    monkeypatch.setattr(r, "xadd", _boom)
    channel = MailboxChannel(r=r)
    controller = SessionController(session_id="s1", channel=channel)

    await controller.admit("A", "Alice")
    await controller.admit("B", "Bob")
    await channel.flush()

    assert controller.state.phase == Phase.active
    assert await controller.submit_move("A", 0) is True
    await channel.flush()
    await channel.stop()


class _StalledRedis:
    """Accepts XADD calls but never answers until released."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.keys: list[str] = []

    async def xadd(self, key, fields, **kwargs):  # type: ignore[no-untyped-def]
        await self.release.wait()
        self.keys.append(key)
        return f"0-{len(self.keys)}"


@pytest.mark.asyncio
async def test_stalled_mailbox_does_not_delay_sessions(channel) -> None:  # type: ignore[no-untyped-def]
    stalled = _StalledRedis()
    mailbox = MailboxChannel(r=stalled)  # type: ignore[arg-type]
    mirrored = SessionController(session_id="s1", channel=mailbox)
    other = SessionController(session_id="s2", channel=channel)

    await asyncio.wait_for(mirrored.admit("A", "Alice"), timeout=0.5)
    await asyncio.wait_for(mirrored.admit("B", "Bob"), timeout=0.5)
    assert await asyncio.wait_for(mirrored.submit_move("A", 4), timeout=0.5) is True
    await asyncio.wait_for(other.admit("C", "Cleo"), timeout=0.5)
    assert stalled.keys == []

    stalled.release.set()
    await asyncio.wait_for(mailbox.flush(), timeout=1)
    assert stalled.keys[0] == Mailbox(session_id="s1", participant_id="A").key
    assert len(stalled.keys) == 7
    await mailbox.stop()
