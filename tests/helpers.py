"""Test doubles shared by the test modules."""

import asyncio
import json

from errors import PersistenceError, SendError


class FakeConnection:
    """In-memory stand-in for WebSocketConnection."""

    def __init__(self, connection_id: str = "conn", fail: bool = False, is_open: bool = True):
        self.connection_id = connection_id
        self.fail = fail
        self.open = is_open
        self.sent = []
        self.closed_with = None

    def is_open(self) -> bool:
        return self.open

    async def send(self, text: str):
        if not self.open:
            raise SendError(f"{self.connection_id} is closed")
        if self.fail:
            raise SendError(f"{self.connection_id} is broken")
        self.sent.append(text)

    async def close(self, code: int = 1000, reason: str = None):
        self.open = False
        self.closed_with = (code, reason)

    def messages(self):
        return [json.loads(text) for text in self.sent]

    def clear(self):
        self.sent = []

    def __repr__(self):
        return f"FakeConnection({self.connection_id})"


class FailingHistoryStore:
    def append(self, room, username, body, timestamp_millis):
        raise PersistenceError("history store is down")

    def load_recent(self, room):
        raise PersistenceError("history store is down")


class FailingUserStore:
    def record_user(self, username):
        raise RuntimeError("user store is down")


class StalledConnection(FakeConnection):
    """A connection whose peer stopped reading: send never completes."""

    def __init__(self, connection_id: str = "stalled"):
        super().__init__(connection_id)
        self.unblock = None

    async def send(self, text: str):
        self.unblock = asyncio.Event()
        await self.unblock.wait()
        self.sent.append(text)
