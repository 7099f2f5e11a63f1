"""Per-connection session lifecycle.

A ChatSession drives one client connection through CONNECTING -> ACTIVE ->
CLOSED. It registers the client in the room registry, replays history,
announces presence, relays chat messages and cleans up on close.
"""
import asyncio
import enum
import functools
import time
from typing import Callable, Optional

import envelopes
from broadcaster import Broadcaster
from constants import WS_CLOSE_POLICY_VIOLATION
from errors import InvalidHandshake, PersistenceError, SendError
from logging_config import get_logger
from registry import Member, RoomRegistry

logger = get_logger(__name__)


def now_millis() -> int:
    return int(time.time() * 1000)


class SessionState(enum.Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class ChatSession:
    def __init__(
        self,
        connection,
        registry: RoomRegistry,
        broadcaster: Broadcaster,
        history_store,
        user_store,
        clock: Callable[[], int] = now_millis,
    ):
        self.connection = connection
        self.registry = registry
        self.broadcaster = broadcaster
        self.history_store = history_store
        self.user_store = user_store
        self.clock = clock

        self.state = SessionState.CONNECTING
        self.username: Optional[str] = None
        self.room: Optional[str] = None
        self.member: Optional[Member] = None

    @property
    def connection_id(self) -> str:
        return getattr(self.connection, "connection_id", repr(self.connection))

    async def on_open(self, username: Optional[str], room: Optional[str]):
        """Register the connection in its room and announce it.

        Raises InvalidHandshake (after closing the connection) when the
        username or room is missing.
        """
        if self.state is not SessionState.CONNECTING:
            logger.warning(f"Ignoring open on connection {self.connection_id} in state {self.state.value}")
            return

        if not username or not username.strip() or not room or not room.strip():
            logger.info(f"Rejecting connection {self.connection_id}: username={username!r}, room={room!r}")
            self.state = SessionState.CLOSED
            await self.connection.close(code=WS_CLOSE_POLICY_VIOLATION, reason="Username and room are required")
            raise InvalidHandshake("Username and room are required")

        self.username = username
        self.room = room
        self.member = Member(connection=self.connection, username=username)
        self.registry.join(room, self.member)

        try:
            await self._run_store(self.user_store.record_user, username)
        except PersistenceError as e:
            logger.error(f"Could not record user {username}: {e}")

        await self._send_history()
        await self._send_private(envelopes.welcome_envelope(username, room))

        await self.broadcaster.broadcast(room, envelopes.join_envelope(username))
        await self._broadcast_roster()

        self.state = SessionState.ACTIVE
        logger.info(f"Session {self.connection_id} active: {username} in room {room}")

    async def on_message(self, text: str):
        if self.state is not SessionState.ACTIVE or not self.username or not self.room:
            logger.debug(f"Dropping message on connection {self.connection_id} in state {self.state.value}")
            return

        timestamp = self.clock()
        logger.debug(f"Message from {self.username} in room {self.room}")
        try:
            await self._run_store(self.history_store.append, self.room, self.username, text, timestamp)
        except PersistenceError as e:
            logger.error(f"Could not store message from {self.username} in room {self.room}: {e}")

        report = await self.broadcaster.broadcast(
            self.room, envelopes.message_envelope(self.username, text, timestamp)
        )
        logger.debug(f"Relayed message from {self.username} to {report.delivered} members in room {self.room}")

    async def on_close(self):
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED

        if not self.username or not self.room:
            logger.debug(f"Connection {self.connection_id} closed before joining a room")
            return

        if self.registry.room_of(self.connection) == self.room:
            self.registry.leave(self.room, self.member)
        else:
            logger.debug(f"{self.username} was already evicted from room {self.room}")
        await self.broadcaster.broadcast(self.room, envelopes.leave_envelope(self.username))
        await self._broadcast_roster()
        logger.info(f"Session {self.connection_id} closed: {self.username} left room {self.room}")

    def on_error(self, error: BaseException):
        """Log a transport error. Cleanup is left to on_close."""
        logger.error(
            f"Transport error on connection {self.connection_id} "
            f"(user={self.username}, room={self.room}, state={self.state.value}): {error}",
            exc_info=error,
        )

    async def _send_history(self):
        try:
            records = await self._run_store(self.history_store.load_recent, self.room)
        except PersistenceError as e:
            logger.error(f"Could not load history for room {self.room}: {e}")
            return
        for record in records:
            await self._send_private(
                envelopes.message_envelope(record.username, record.body, record.timestamp_millis)
            )
        logger.debug(f"Sent {len(records)} history records to {self.username}")

    async def _send_private(self, message: str):
        try:
            await self.connection.send(message)
        except SendError as e:
            logger.warning(f"Could not send to {self.username} on connection {self.connection_id}: {e}")

    async def _broadcast_roster(self):
        usernames = [member.username for member in self.registry.snapshot(self.room)]
        await self.broadcaster.broadcast(self.room, envelopes.users_envelope(usernames))

    async def _run_store(self, operation, *args):
        """Run a blocking store call off the event loop.

        Anything the store raises that is not already a PersistenceError is
        wrapped in one.
        """
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(operation, *args))
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(str(e)) from e
