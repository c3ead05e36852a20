"""Redis client wrapper for pub/sub notifications."""

import json
import logging
from typing import Any

import redis.asyncio as aioredis

from handoff.settings import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Redis client wrapper for async operations."""

    def __init__(self, url: str | None = None, enabled: bool | None = None) -> None:
        """Initialize Redis client."""
        self._client: aioredis.Redis | None = None
        self._url = url or settings.redis_url
        self._enabled: bool = settings.redis_enabled if enabled is None else enabled

    @property
    def enabled(self) -> bool:
        return self._enabled and self._client is not None

    async def connect(self) -> None:
        """Connect to Redis."""
        if not self._enabled:
            logger.info("Redis disabled - skipping connection")
            return
        if self._client is None:
            try:
                client = aioredis.from_url(
                    self._url,
                    encoding="utf-8",
                    decode_responses=True,
                )
                await client.ping()
                self._client = client
                logger.info("Redis connected successfully")
            except (aioredis.RedisError, OSError) as e:
                logger.warning(f"Redis connection failed: {e}. Continuing without Redis.")
                self._enabled = False

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def publish(self, channel: str, message: dict[str, Any]) -> int:
        """Publish a JSON message on a channel.

        Args:
            channel: Pub/sub channel
            message: JSON-serializable payload

        Returns:
            Number of subscribers that received the message (0 when disabled)
        """
        if not self.enabled:
            return 0
        return await self._client.publish(channel, json.dumps(message, default=str))


# Global Redis client instance
redis_client = RedisClient()
