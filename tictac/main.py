from __future__ import annotations

import asyncio
import logging

import redis.asyncio
from fastapi import FastAPI

from tictac import __version__
from tictac.api.routes import router
from tictac.config import ServerConfig, load_config
from tictac.infra.redis_client import create_redis
from tictac.registry import SessionRegistry
from tictac.replication import FanoutChannel, ReplicationChannel
from tictac.streams import MailboxChannel
from tictac.websocket_hub import SessionWebSocketHub

logger = logging.getLogger(__name__)


def create_app(config: ServerConfig | None = None, *, redis_client: redis.asyncio.Redis | None = None) -> FastAPI:
    """Build the app with its own hub and registry.

    `redis_client` overrides `config.redis_url` (tests pass fakeredis here).
    """

    config = config or load_config()

    hub = SessionWebSocketHub(outbox_size=config.outbox_size)
    channel: ReplicationChannel = hub
    mailbox: MailboxChannel | None = None
    if redis_client is None and config.redis_url:
        redis_client = create_redis(config.redis_url, timeout=config.redis_timeout)
    if redis_client is not None:
        mailbox = MailboxChannel(r=redis_client, maxlen=config.mailbox_maxlen)
        channel = FanoutChannel(hub, mailbox)
        logger.info("mirroring session frames to redis mailboxes")

    registry = SessionRegistry(channel=channel)

    app = FastAPI(title="tictac-sync", version=__version__)
    app.state.config = config
    app.state.hub = hub
    app.state.registry = registry
    app.state.mailbox = mailbox
    app.include_router(router)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await registry.close_all()
        if mailbox is None:
            return
        try:
            await asyncio.wait_for(mailbox.flush(), timeout=config.redis_timeout)
        except TimeoutError:
            logger.warning("redis mailbox flush timed out, pending frames dropped")
        await mailbox.stop()

    return app


_config = load_config()
# Configure logging
logging.basicConfig(level=_config.log_level)

app = create_app(_config)
