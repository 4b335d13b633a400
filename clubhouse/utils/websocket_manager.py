from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import WebSocket

logger = logging.getLogger(__name__)


@dataclass
class ConnectionInfo:
    """Metadata describing a single WebSocket connection."""

    id: str
    websocket: WebSocket
    user_id: Optional[str] = None

    async def send_json(self, message: Dict[str, Any]) -> None:
        """Proxy to the underlying WebSocket send_json method."""
        await self.websocket.send_json(message)


class WebSocketManager:
    """
    Process-wide room table: room id -> {connection id: ConnectionInfo}.

    A connection may sit in any number of rooms (one per meeting or club it
    watches). Delivery is best effort: a send that fails drops that
    connection from the room and nothing is queued for it.
    """

    def __init__(self):
        self._rooms: Dict[str, Dict[str, ConnectionInfo]] = {}
        self._lock = threading.Lock()
        self.started = False

    def start(self) -> None:
        with self._lock:
            self._rooms.clear()
            self.started = True
        logger.info("WebSocket room registry started")

    async def shutdown(self) -> None:
        with self._lock:
            dropped = sum(len(members) for members in self._rooms.values())
            self._rooms.clear()
            self.started = False
        logger.info("WebSocket room registry stopped; dropped %d subscriptions", dropped)

    async def connect(
        self, websocket: WebSocket, *, user_id: Optional[str] = None
    ) -> ConnectionInfo:
        """Accept the socket and return its connection handle."""
        await websocket.accept()
        connection = ConnectionInfo(id=str(uuid4()), websocket=websocket, user_id=user_id)
        logger.debug(
            "WebSocket connected: connection_id=%s user_id=%s", connection.id, user_id
        )
        return connection

    def subscribe(self, room_id: str, connection: ConnectionInfo) -> None:
        with self._lock:
            self._rooms.setdefault(room_id, {})[connection.id] = connection
        logger.debug("Subscribed connection_id=%s to room=%s", connection.id, room_id)

    def unsubscribe(self, room_id: str, connection_id: str) -> bool:
        """Remove a connection from a room; returns False if it was not there."""
        with self._lock:
            members = self._rooms.get(room_id)
            if not members or connection_id not in members:
                return False
            members.pop(connection_id, None)
            if not members:
                self._rooms.pop(room_id, None)
        logger.debug("Unsubscribed connection_id=%s from room=%s", connection_id, room_id)
        return True

    def unsubscribe_all(self, connection_id: str) -> List[str]:
        """Drop every subscription held by a connection. Returns the rooms left."""
        left: List[str] = []
        with self._lock:
            for room_id in list(self._rooms.keys()):
                members = self._rooms[room_id]
                if members.pop(connection_id, None) is not None:
                    left.append(room_id)
                if not members:
                    self._rooms.pop(room_id, None)
        if left:
            logger.debug(
                "WebSocket disconnected: connection_id=%s rooms=%s", connection_id, left
            )
        return left

    def subscribers(self, room_id: str) -> Dict[str, ConnectionInfo]:
        with self._lock:
            return dict(self._rooms.get(room_id, {}))

    def rooms_for(self, connection_id: str) -> List[str]:
        with self._lock:
            return [
                room_id
                for room_id, members in self._rooms.items()
                if connection_id in members
            ]

    async def publish(
        self,
        room_id: str,
        event: Dict[str, Any],
        *,
        skip_connection: Optional[str] = None,
    ) -> int:
        """Send `event` once to each current subscriber; returns how many got it."""
        delivered = 0
        failed: List[str] = []

        # Iterate over a snapshot; sends await and other handlers may
        # subscribe or unsubscribe meanwhile.
        for connection_id, connection in self.subscribers(room_id).items():
            if skip_connection and connection_id == skip_connection:
                continue
            try:
                await connection.send_json(event)
                delivered += 1
            except Exception:
                logger.debug(
                    "Dropping connection_id=%s from room=%s after failed send",
                    connection_id,
                    room_id,
                )
                failed.append(connection_id)

        for connection_id in failed:
            self.unsubscribe(room_id, connection_id)
        return delivered

    async def send_personal_message(
        self, connection: ConnectionInfo, message: Dict[str, Any]
    ) -> bool:
        try:
            await connection.send_json(message)
        except Exception:
            logger.debug("Direct send failed for connection_id=%s", connection.id)
            self.unsubscribe_all(connection.id)
            return False
        return True


# Create a singleton instance
websocket_manager = WebSocketManager()
