"""Tests for real-time job notifications."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from starlette.websockets import WebSocketDisconnect

from pantry_ingest.services.realtime import (
    JobEventType,
    RealtimeService,
    get_sync_redis,
    job_channel,
    publish_job_event,
)


class TestJobEventType:
    """Tests for JobEventType enum."""

    def test_job_events_exist(self):
        """Verify all job event types are defined."""
        assert JobEventType.UPLOAD_UPDATED == "upload_updated"
        assert JobEventType.INGESTION_JOB_UPDATED == "ingestion_job_updated"


def test_job_channel():
    assert job_channel("abc") == "user:abc:jobs"


class TestGetSyncRedis:
    """Tests for get_sync_redis function."""

    def test_creates_redis_client(self):
        """Test that get_sync_redis creates a Redis client."""
        import pantry_ingest.services.realtime as realtime_module

        realtime_module._sync_redis = None

        with patch("pantry_ingest.services.realtime.redis.from_url") as mock_from_url:
            mock_client = MagicMock()
            mock_from_url.return_value = mock_client

            result = get_sync_redis()

            assert result == mock_client
            mock_from_url.assert_called_once()

        # Clean up
        realtime_module._sync_redis = None

    def test_reuses_existing_client(self):
        """Test that get_sync_redis reuses existing client."""
        import pantry_ingest.services.realtime as realtime_module

        mock_client = MagicMock()
        realtime_module._sync_redis = mock_client

        with patch("pantry_ingest.services.realtime.redis.from_url") as mock_from_url:
            result = get_sync_redis()

            assert result == mock_client
            mock_from_url.assert_not_called()

        # Clean up
        realtime_module._sync_redis = None


class TestPublishJobEvent:
    """Tests for publish_job_event function."""

    def test_publishes_event_to_user_channel(self, mock_redis):
        """Test that events are published to the user's job channel."""
        publish_job_event("user-1", JobEventType.UPLOAD_UPDATED, {"upload_id": "u1"})

        mock_redis.publish.assert_called_once()
        call_args = mock_redis.publish.call_args
        assert call_args[0][0] == "user:user-1:jobs"

        message = json.loads(call_args[0][1])
        assert message["type"] == "upload_updated"
        assert message["user_id"] == "user-1"
        assert message["data"] == {"upload_id": "u1"}
        assert "timestamp" in message

    def test_publishes_event_without_data(self, mock_redis):
        publish_job_event("user-1", JobEventType.INGESTION_JOB_UPDATED)

        message = json.loads(mock_redis.publish.call_args[0][1])
        assert message["data"] == {}

    def test_handles_redis_error_gracefully(self, mock_redis):
        """Test that Redis errors don't fail the transition."""
        mock_redis.publish.side_effect = Exception("Redis connection failed")

        # Should not raise exception
        publish_job_event("user-1", JobEventType.UPLOAD_UPDATED, {"upload_id": "u1"})


class TestRealtimeService:
    """Tests for RealtimeService class."""

    @pytest.mark.asyncio
    async def test_cleanup_closes_connections(self):
        """Test that cleanup closes Redis connections."""
        service = RealtimeService()
        mock_redis = AsyncMock()
        mock_pubsub = AsyncMock()
        service._redis = mock_redis
        service._pubsub = mock_pubsub

        await service.cleanup()

        mock_pubsub.close.assert_called_once()
        mock_redis.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_subscribe_yields_messages(self):
        """Test that subscribe yields parsed messages and skips confirmations."""
        service = RealtimeService()

        mock_redis = MagicMock()
        mock_pubsub = MagicMock()
        test_message = {"type": "ingestion_job_updated", "data": {"job_id": "j1"}}

        async def mock_listen():
            yield {"type": "subscribe", "data": 1}  # Subscribe confirmation
            yield {"type": "message", "data": "not json"}
            yield {"type": "message", "data": json.dumps(test_message)}

        mock_pubsub.listen = mock_listen
        mock_pubsub.subscribe = AsyncMock()
        mock_pubsub.unsubscribe = AsyncMock()
        mock_redis.pubsub.return_value = mock_pubsub

        # Directly set the redis connection to bypass _get_redis
        service._redis = mock_redis

        messages = []
        async for msg in service.subscribe("user:user-1:jobs"):
            messages.append(msg)
            break

        assert messages == [test_message]
        mock_pubsub.subscribe.assert_called_once_with("user:user-1:jobs")


def test_websocket_rejects_invalid_token(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/api/v1/ws/jobs?token=invalid") as websocket:
            websocket.receive_json()
    assert exc_info.value.code == 4001
