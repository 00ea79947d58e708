"""Real-time job notifications using Redis pub/sub."""

import json
import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

import redis
import redis.asyncio as aioredis

from pantry_ingest.config import get_settings

if TYPE_CHECKING:
    from redis.asyncio.client import PubSub

logger = logging.getLogger(__name__)
settings = get_settings()


class JobEventType(StrEnum):
    """Event types for upload and ingestion job changes."""

    UPLOAD_UPDATED = "upload_updated"
    INGESTION_JOB_UPDATED = "ingestion_job_updated"


# Synchronous Redis client for use in API endpoints and workers
_sync_redis: redis.Redis | None = None


def get_sync_redis() -> redis.Redis:
    """Get synchronous Redis client for publishing."""
    global _sync_redis
    if _sync_redis is None:
        _sync_redis = redis.from_url(settings.redis_url)
    return _sync_redis


def job_channel(user_id: str) -> str:
    """Channel carrying a user's upload and ingestion job changes."""
    return f"user:{user_id}:jobs"


def publish_job_event(user_id: str, event_type: JobEventType, data: dict | None = None) -> None:
    """Publish a job change to the user's channel.

    Called after every committed status transition. Subscribers still
    treat the database record as the source of truth.

    Args:
        user_id: Owner of the job
        event_type: upload_updated or ingestion_job_updated
        data: Event payload (ids and the new status)
    """
    try:
        redis_client = get_sync_redis()
        channel = job_channel(user_id)
        message = {
            "type": event_type,
            "user_id": user_id,
            "timestamp": datetime.now(UTC).isoformat(),
            "data": data or {},
        }
        redis_client.publish(channel, json.dumps(message, default=str))
        logger.debug(f"Published {event_type} to {channel}")
    except Exception as e:
        # Don't fail the transition if pub/sub fails
        logger.error(f"Failed to publish job event: {e}")


class RealtimeService:
    """Async Redis pub/sub service for WebSocket connections."""

    def __init__(self) -> None:
        self._redis: aioredis.Redis | None = None
        self._pubsub: PubSub | None = None

    async def _get_redis(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(settings.redis_url)
        return self._redis

    async def subscribe(self, channel: str) -> AsyncIterator[dict]:
        """Subscribe to a Redis channel and yield messages."""
        redis_conn = await self._get_redis()
        self._pubsub = redis_conn.pubsub()
        await self._pubsub.subscribe(channel)

        try:
            async for message in self._pubsub.listen():
                if message["type"] == "message":
                    try:
                        data = json.loads(message["data"])
                        yield data
                    except json.JSONDecodeError:
                        logger.warning(f"Invalid JSON in pub/sub message: {message['data']}")
        finally:
            if self._pubsub:
                await self._pubsub.unsubscribe(channel)

    async def cleanup(self) -> None:
        """Clean up Redis connections."""
        if self._pubsub:
            await self._pubsub.close()
        if self._redis:
            await self._redis.close()
