import asyncio
import uuid
from typing import Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from errors import SendError
from logging_config import get_logger

logger = get_logger(__name__)


class WebSocketConnection:
    """Handle over one client's WebSocket.

    Writes are serialised by a per-connection lock so two concurrent
    broadcasts never interleave frames on the same socket. The handle never
    shares that lock with any other connection.
    """

    def __init__(self, websocket: WebSocket, connection_id: Optional[str] = None):
        self.websocket = websocket
        self.connection_id = connection_id or str(uuid.uuid4())
        self._send_lock = asyncio.Lock()

    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, text: str):
        async with self._send_lock:
            if not self.is_open():
                raise SendError(f"Connection {self.connection_id} is closed")
            try:
                await self.websocket.send_text(text)
            except Exception as e:
                raise SendError(f"Failed to send to connection {self.connection_id}: {e}") from e

    async def receive(self) -> str:
        return await self.websocket.receive_text()

    async def close(self, code: int = 1000, reason: Optional[str] = None):
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"Error closing WebSocket {self.connection_id}: {e}")

    def __repr__(self):
        return f"WebSocketConnection({self.connection_id})"
