from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ServerConfig:
    # When set, every frame is also mirrored to Redis Stream mailboxes.
    redis_url: str | None = None
    # Frames queued per WebSocket before a slow participant is dropped.
    outbox_size: int = 64
    # Approximate entries kept per mailbox stream.
    mailbox_maxlen: int = 256
    # Seconds before a Redis call is abandoned.
    redis_timeout: float = 2.0
    log_level: str = "INFO"


def load_config() -> ServerConfig:
    return ServerConfig(
        redis_url=os.environ.get("TICTAC_REDIS_URL") or None,
        outbox_size=int(os.environ.get("TICTAC_OUTBOX_SIZE", "64")),
        mailbox_maxlen=int(os.environ.get("TICTAC_MAILBOX_MAXLEN", "256")),
        redis_timeout=float(os.environ.get("TICTAC_REDIS_TIMEOUT", "2.0")),
        log_level=os.environ.get("TICTAC_LOG_LEVEL", "INFO").upper(),
    )
