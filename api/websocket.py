"""WebSocket fan-out of engine pipeline events."""
import asyncio
import json
import logging
from typing import Set, Dict, Optional
from fastapi import WebSocket, WebSocketDisconnect
import redis.asyncio as redis
from shared.config import settings

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks WebSocket clients, globally and per watched job."""

    def __init__(self):
        # job_id -> clients watching that job
        self.job_connections: Dict[str, Set[WebSocket]] = {}
        # clients watching every job
        self.global_connections: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket, job_id: Optional[str] = None):
        """Accept a client and register what it watches."""
        await websocket.accept()
        if job_id:
            self.job_connections.setdefault(job_id, set()).add(websocket)
        else:
            self.global_connections.add(websocket)

    def disconnect(self, websocket: WebSocket, job_id: Optional[str] = None):
        """Forget a client."""
        self.global_connections.discard(websocket)
        if job_id and job_id in self.job_connections:
            self.job_connections[job_id].discard(websocket)
            if not self.job_connections[job_id]:
                del self.job_connections[job_id]

    async def _send_all(self, connections: Set[WebSocket], message: dict) -> Set[WebSocket]:
        dead = set()
        for connection in list(connections):
            try:
                await connection.send_json(message)
            except (WebSocketDisconnect, RuntimeError):
                dead.add(connection)
        return dead

    async def dispatch(self, message: dict):
        """Deliver an event to global clients and to clients of its job."""
        for connection in await self._send_all(self.global_connections, message):
            self.disconnect(connection)

        job_id = message.get("job_id")
        if job_id and job_id in self.job_connections:
            for connection in await self._send_all(self.job_connections[job_id], message):
                self.disconnect(connection, job_id)


# Global connection manager
manager = ConnectionManager()


async def redis_subscriber(redis_client: redis.Redis):
    """Subscribe to the engine event channel and forward events to WebSocket clients."""
    pubsub = redis_client.pubsub()
    await pubsub.subscribe(settings.redis_result_channel)

    try:
        async for message in pubsub.listen():
            if message["type"] != "message":
                continue
            try:
                data = json.loads(message["data"])
            except json.JSONDecodeError:
                logger.warning(f"Dropping malformed event: {message['data']!r}")
                continue
            await manager.dispatch(data)
    except asyncio.CancelledError:
        logger.info("Event subscriber stopped")
    finally:
        await pubsub.unsubscribe(settings.redis_result_channel)
        await pubsub.aclose()


async def websocket_endpoint(websocket: WebSocket, job_id: Optional[str] = None):
    """Keep a client connected, answering pings and sending heartbeats."""
    await manager.connect(websocket, job_id)

    try:
        while True:
            try:
                data = await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=settings.ws_heartbeat_interval
                )
                if data == "ping":
                    await websocket.send_text("pong")
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "heartbeat"})
    except WebSocketDisconnect:
        manager.disconnect(websocket, job_id)
