"""WebSocket stream of session lifecycle events and record changes for dashboards."""

import asyncio
import json
import logging

from fastapi import WebSocket, WebSocketDisconnect

from gamecentre.services.store import RecordChange

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages active dashboard WebSocket connections."""

    def __init__(self):
        self._connections: list[WebSocket] = []
        self._loop: asyncio.AbstractEventLoop | None = None

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remember the server loop so timer threads can publish into it."""
        self._loop = loop

    async def connect(self, ws: WebSocket):
        await ws.accept()
        self._connections.append(ws)
        logger.debug("Dashboard connected (%d open)", len(self._connections))

    def disconnect(self, ws: WebSocket):
        if ws in self._connections:
            self._connections.remove(ws)

    async def broadcast(self, message: dict):
        """Broadcast a message to every connected dashboard."""
        dead = []
        for ws in list(self._connections):
            try:
                await ws.send_json(message)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)

    def publish(self, message: dict) -> None:
        """Thread-safe broadcast; a no-op until the loop is attached or nobody listens."""
        loop = self._loop
        if loop is None or loop.is_closed() or not self._connections:
            return
        asyncio.run_coroutine_threadsafe(self.broadcast(message), loop)

    def publish_change(self, change: RecordChange) -> None:
        self.publish({
            "type": "record_changed",
            "kind": change.kind,
            "op": change.op,
            "id": change.record_id,
        })

    @property
    def connection_count(self) -> int:
        return len(self._connections)


manager = ConnectionManager()


async def websocket_events(ws: WebSocket):
    """WebSocket endpoint: pushes events, answers pings."""
    await manager.connect(ws)

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
                msg_type = msg.get("type", "")

                if msg_type == "ping":
                    await ws.send_json({"type": "pong"})
                else:
                    await ws.send_json({"type": "error", "message": f"Unknown type: {msg_type}"})
            except json.JSONDecodeError:
                await ws.send_json({"type": "error", "message": "Invalid JSON"})
    except WebSocketDisconnect:
        manager.disconnect(ws)
