"""Best-effort event fan-out to real-time listeners.

Publishing never raises: a missing or unreachable broker must not fail a
registration or an evaluation that has already committed.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Protocol

import redis
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()
DEFAULT_CHANNEL = os.getenv("NOTIFICATION_CHANNEL", "hackeval:events")


@dataclass(frozen=True)
class Event:
    """A notification about a committed change."""

    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> str:
        return json.dumps(
            {
                "type": self.type,
                "payload": self.payload,
                "occurred_at": self.occurred_at.isoformat(),
            },
            ensure_ascii=False,
        )

    @classmethod
    def from_json(cls, raw: str) -> "Event":
        data = json.loads(raw)
        return cls(
            type=data["type"],
            payload=data.get("payload") or {},
            occurred_at=datetime.fromisoformat(data["occurred_at"]),
        )


class Notifier(Protocol):
    def publish(self, event: Event) -> bool: ...

    def subscribe(self, stream: Optional[str] = None) -> Iterator[Event]: ...


class NullNotifier:
    """Notifier used when no broker is configured. Drops every event."""

    def publish(self, event: Event) -> bool:
        logger.debug("Dropping %s event; no broker configured", event.type)
        return False

    def subscribe(self, stream: Optional[str] = None) -> Iterator[Event]:
        return iter(())


class RedisNotifier:
    """Publishes events on a Redis pub/sub channel."""

    def __init__(
        self,
        client: Optional["redis.Redis"] = None,
        *,
        url: Optional[str] = None,
        channel: str = DEFAULT_CHANNEL,
        timeout: float = 5.0,
    ):
        if client is None:
            redis_url = url or os.getenv("REDIS_URL")
            if not redis_url:
                raise ValueError("Environment variable 'REDIS_URL' is not set")
            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=timeout,
                socket_timeout=timeout,
            )
        self.client = client
        self.channel = channel

    def publish(self, event: Event) -> bool:
        """Publish ``event``; return ``False`` instead of raising on failure."""
        try:
            self.client.publish(self.channel, event.to_json())
        except redis.RedisError as exc:
            logger.warning("Publishing %s event failed: %s", event.type, exc)
            return False
        return True

    def subscribe(self, stream: Optional[str] = None) -> Iterator[Event]:
        """Yield events published on ``stream`` (defaults to the notifier channel)."""
        pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        pubsub.subscribe(stream or self.channel)
        try:
            for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield Event.from_json(message["data"])
                except (ValueError, KeyError, TypeError) as exc:
                    logger.warning("Skipping malformed event: %s", exc)
        finally:
            pubsub.close()


def notifier_from_env() -> Notifier:
    """Return a :class:`RedisNotifier` when ``REDIS_URL`` is set, else a null one."""
    if os.getenv("REDIS_URL"):
        return RedisNotifier()
    return NullNotifier()
