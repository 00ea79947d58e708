"""WebSocket endpoint for real-time upload and ingestion job updates."""

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from pantry_ingest.services.auth import get_user_id_from_token
from pantry_ingest.services.realtime import RealtimeService, job_channel

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/ws", tags=["websocket"])


@router.websocket("/jobs")
async def websocket_job_updates(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    """WebSocket endpoint for a user's job status changes.

    Authentication via token query parameter (WebSocket doesn't support headers).
    Subscribes to the user's Redis channel and forwards every event.
    """
    realtime_service = RealtimeService()
    user_id: str | None = None

    try:
        user_id = get_user_id_from_token(token)
        if not user_id:
            await websocket.close(code=4001, reason="Invalid token")
            return

        await websocket.accept()
        logger.info(f"WebSocket connected: user={user_id}")

        async def handle_messages() -> None:
            """Receive messages from Redis and forward to WebSocket."""
            async for message in realtime_service.subscribe(job_channel(user_id)):
                try:
                    await websocket.send_json(message)
                except WebSocketDisconnect:
                    break
                except Exception as e:
                    logger.error(f"Error sending WebSocket message: {e}")
                    break

        async def handle_ping() -> None:
            """Send periodic pings to keep connection alive."""
            while True:
                try:
                    await asyncio.sleep(30)
                    await websocket.send_json({"type": "ping"})
                except Exception:
                    break

        async def handle_client() -> None:
            """Handle incoming messages from client (pong responses)."""
            while True:
                try:
                    data = await websocket.receive_json()
                    if data.get("type") == "pong":
                        continue  # Keepalive acknowledgment
                except WebSocketDisconnect:
                    break
                except Exception:
                    break

        # Run all handlers concurrently
        await asyncio.gather(
            handle_messages(),
            handle_ping(),
            handle_client(),
            return_exceptions=True,
        )

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: user={user_id}")
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
    finally:
        await realtime_service.cleanup()
