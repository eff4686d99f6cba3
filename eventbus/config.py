"""Runtime settings for an event bus."""

from __future__ import annotations

import os
from enum import StrEnum

from pydantic import BaseModel, Field


class OverflowPolicy(StrEnum):
    BLOCK = "block"
    DROP = "drop"


class BusSettings(BaseModel):
    """Settings for one EventBus, optionally derived from environment variables.

    ``async_queue_size`` of 0 means the async queue grows without bound. A
    positive size bounds it; ``async_overflow`` then decides whether a full
    queue makes ``publish_async`` wait (``block``) or fail with
    ``AsyncQueueFull`` (``drop``).
    """

    log_level: str | None = None
    logger_name: str = "eventbus"
    async_queue_size: int = Field(default=0, ge=0)
    async_overflow: OverflowPolicy = OverflowPolicy.BLOCK
    worker_name: str = "event-dispatcher"
    close_timeout: float = Field(default=5.0, gt=0)

    @classmethod
    def from_env(cls) -> BusSettings:
        raw: dict[str, str] = {}
        pairs = [
            ("log_level", "EVENTBUS_LOG_LEVEL"),
            ("logger_name", "EVENTBUS_LOGGER_NAME"),
            ("async_queue_size", "EVENTBUS_ASYNC_QUEUE_SIZE"),
            ("async_overflow", "EVENTBUS_ASYNC_OVERFLOW"),
            ("worker_name", "EVENTBUS_WORKER_NAME"),
            ("close_timeout", "EVENTBUS_CLOSE_TIMEOUT"),
        ]
        for field_name, env_name in pairs:
            value = os.getenv(env_name, "").strip()
            if value:
                raw[field_name] = value.lower() if field_name == "async_overflow" else value
        return cls.model_validate(raw)
