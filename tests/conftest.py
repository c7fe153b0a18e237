from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from tictac.api.models import Participant, StateSnapshot
from tictac.replication import ReplicationChannel
from tictac.session import SessionController


class RecordingChannel(ReplicationChannel):
    """Keeps every frame the controller produced, in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []
        self.closed: list[str] = []

    async def welcome(self, session_id: str, participant: Participant) -> None:
        self.events.append(("welcome", participant))

    async def broadcast(self, snapshot: StateSnapshot) -> None:
        self.events.append(("state", snapshot))

    async def session_closed(self, session_id: str) -> None:
        self.closed.append(session_id)

    @property
    def snapshots(self) -> list[StateSnapshot]:
        return [e for kind, e in self.events if kind == "state"]  # type: ignore[misc]

    @property
    def last(self) -> StateSnapshot:
        return self.snapshots[-1]


@pytest.fixture()
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture()
def controller(channel: RecordingChannel) -> SessionController:
    return SessionController(session_id="s1", channel=channel)


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    """TestClient over a fresh app, so sessions never leak between tests."""

    import fakeredis

    from tictac.config import ServerConfig
    from tictac.main import create_app

    # The app writes through the async client; tests read back through a sync one.
    server = fakeredis.FakeServer()
    app = create_app(ServerConfig(), redis_client=fakeredis.FakeAsyncRedis(server=server, decode_responses=True))
    app.state.redis = fakeredis.FakeRedis(server=server, decode_responses=True)
    with TestClient(app) as c:
        yield c
