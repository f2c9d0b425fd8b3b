import asyncio
import json
from typing import Any, Dict, Iterable, Optional, Set

from fastapi import WebSocket

from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    """Tracks live sockets and their broadcast groups.

    Groups mirror room ids. Delivery is fire-and-forget: a failed send is
    logged and never raised to the caller, the socket's own receive loop
    notices the dead connection and runs the disconnect path.
    """

    def __init__(self):
        # Format: {connection_id: websocket}
        self.connections: Dict[str, WebSocket] = {}
        # Format: {room_id: {connection_id, ...}}
        self.groups: Dict[str, Set[str]] = {}

    def register(self, connection_id: str, websocket: WebSocket):
        self.connections[connection_id] = websocket
        logger.debug(f"Tracking connection {connection_id} ({len(self.connections)} live)")

    def unregister(self, connection_id: str):
        self.connections.pop(connection_id, None)
        for group_id in list(self.groups):
            self.leave_group(group_id, connection_id)

    def join_group(self, group_id: str, connection_id: str):
        self.groups.setdefault(group_id, set()).add(connection_id)

    def leave_group(self, group_id: str, connection_id: str):
        members = self.groups.get(group_id)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self.groups[group_id]

    def group_members(self, group_id: str) -> Set[str]:
        return set(self.groups.get(group_id, ()))

    async def send(self, connection_id: str, event: str, data: Any = None):
        websocket = self.connections.get(connection_id)
        if websocket is None:
            logger.debug(f"Dropping {event} for unknown connection {connection_id}")
            return
        await self._deliver(connection_id, websocket, json.dumps({"event": event, "data": data}))

    async def broadcast(self, group_id: str, event: str, data: Any = None, exclude: Optional[str] = None):
        targets = [conn_id for conn_id in self.group_members(group_id) if conn_id != exclude]
        await self.send_many(targets, event, data)

    async def send_many(self, connection_ids: Iterable[str], event: str, data: Any = None):
        frame = json.dumps({"event": event, "data": data})
        send_tasks = []
        for conn_id in connection_ids:
            websocket = self.connections.get(conn_id)
            if websocket is not None:
                send_tasks.append(self._deliver(conn_id, websocket, frame))
        if send_tasks:
            await asyncio.gather(*send_tasks)
            logger.debug(f"Delivered {event} to {len(send_tasks)} connections")

    async def _deliver(self, connection_id: str, websocket: WebSocket, frame: str):
        try:
            await websocket.send_text(frame)
        except Exception as e:
            logger.warning(f"Error sending to connection {connection_id}: {e}")
