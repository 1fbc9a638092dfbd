"""WebSocket API for the live feed.

Provides:
- WS /ws/feed/{user_id} - Snapshot stream plus feed commands
"""

import asyncio
import contextlib

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from src.core.logging import get_logger
from src.feed.dependencies import get_feed_registry
from src.feed.exceptions import FeedError
from src.feed.session import NotificationFeed
from src.notifications.models import FilterKind
from src.notifications.schemas import FeedStateResponse


logger = get_logger(__name__)

router = APIRouter(tags=["feed-ws"])

SNAPSHOT_QUEUE_SIZE = 32


class SnapshotQueue:
    """Bounded queue of snapshots; when full the oldest one is dropped."""

    def __init__(self, maxsize: int = SNAPSHOT_QUEUE_SIZE) -> None:
        self._queue: asyncio.Queue[FeedStateResponse] = asyncio.Queue(maxsize=maxsize)

    def put(self, snapshot: FeedStateResponse) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(snapshot)

    async def get(self) -> FeedStateResponse:
        return await self._queue.get()


async def handle_command(feed: NotificationFeed, message: dict) -> dict | None:
    """Run one client command. Returns a reply for the client, if any."""
    command = message.get("type")
    try:
        if command == "ping":
            return {"type": "pong"}
        if command == "next":
            await feed.request_next_page()
        elif command == "retry":
            await feed.retry()
        elif command == "refresh":
            await feed.refresh()
        elif command == "filter":
            await feed.change_filter(FilterKind(message.get("filter")))
        elif command == "read":
            await feed.mark_as_read(int(message["id"]))
        elif command == "read_all":
            await feed.mark_all_as_read()
        elif command == "delete":
            feed.delete_notifications([int(i) for i in message.get("ids", [])])
        else:
            return {"type": "error", "message": f"Unknown command: {command}"}
    except FeedError as e:
        return {"type": "error", "command": command, "message": str(e)}
    except (KeyError, ValueError, ValidationError) as e:
        return {"type": "error", "command": command, "message": f"Invalid command: {e}"}
    return None


async def _forward_snapshots(websocket: WebSocket, queue: SnapshotQueue) -> None:
    while True:
        snapshot = await queue.get()
        await websocket.send_json(
            {"type": "feed", "data": snapshot.model_dump(mode="json")}
        )


@router.websocket("/ws/feed/{user_id}")
async def feed_websocket(websocket: WebSocket, user_id: int) -> None:
    """WebSocket endpoint streaming feed snapshots.

    Messages received:
    - {"type": "feed", "data": {...}} - Snapshot after every change
    - {"type": "error", "message": "..."} - Command failed
    - {"type": "pong"} - Reply to ping

    Messages you can send:
    - {"type": "next"} / {"type": "retry"} / {"type": "refresh"}
    - {"type": "filter", "filter": "all|unread|system|social"}
    - {"type": "read", "id": N} / {"type": "read_all"}
    - {"type": "delete", "ids": [N, ...]}
    - {"type": "ping"}
    """
    registry = get_feed_registry(websocket)
    feed = await registry.get_or_create(user_id)

    await websocket.accept()
    logger.info("feed_websocket_connected", user_id=user_id)

    queue = SnapshotQueue()
    unsubscribe = feed.subscribe(queue.put)
    queue.put(feed.snapshot())
    sender = asyncio.create_task(_forward_snapshots(websocket, queue))

    try:
        while True:
            message = await websocket.receive_json()
            reply = await handle_command(feed, message)
            if reply is not None:
                await websocket.send_json(reply)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning("feed_websocket_error", user_id=user_id, error=str(e))
    finally:
        unsubscribe()
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
        closed = await registry.release(user_id)
        logger.info("feed_websocket_disconnected", user_id=user_id, feed_closed=closed)
