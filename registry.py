"""Room membership registry.

Maps a room id to the ordered set of members currently in it. A room exists
only while it has at least one member. All reads hand out copies, so callers
never iterate a set that another task is mutating.
"""
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Member:
    """A connection paired with its username.

    The registry holds members by reference only; it never closes the
    underlying connection.
    """
    connection: Any
    username: str


class RoomRegistry:
    def __init__(self):
        # room id -> {connection: member}, insertion ordered
        self._rooms: Dict[str, Dict[Any, Member]] = {}
        # connection -> room id
        self._room_of: Dict[Any, str] = {}
        self._lock = threading.Lock()

    def join(self, room: str, member: Member):
        """Add a member to a room, creating the room if needed.

        A connection already registered in another room is moved out of it
        first. Joining twice with the same member is a no-op.
        """
        with self._lock:
            previous_room = self._room_of.get(member.connection)
            if previous_room is not None and previous_room != room:
                self._discard(previous_room, member.connection)
                logger.debug(f"Moved {member.username} out of room {previous_room}")

            members = self._rooms.setdefault(room, {})
            if members.get(member.connection) == member:
                logger.debug(f"{member.username} already in room {room}")
                return
            members[member.connection] = member
            self._room_of[member.connection] = room
            count = len(members)
        logger.info(f"{member.username} joined room {room} ({count} members)")

    def leave(self, room: str, member: Member):
        """Remove a member from a room; prune the room when it empties."""
        with self._lock:
            members = self._rooms.get(room)
            if not members or members.get(member.connection) != member:
                return
            self._discard(room, member.connection)
            count = len(self._rooms.get(room, ()))
        logger.info(f"{member.username} left room {room} ({count} members)")

    def snapshot(self, room: str) -> List[Member]:
        with self._lock:
            return list(self._rooms.get(room, {}).values())

    def member_count(self, room: str) -> int:
        with self._lock:
            return len(self._rooms.get(room, ()))

    def rooms(self) -> Dict[str, int]:
        with self._lock:
            return {room: len(members) for room, members in self._rooms.items()}

    def room_of(self, connection) -> Optional[str]:
        with self._lock:
            return self._room_of.get(connection)

    def _discard(self, room: str, connection):
        # Caller holds the lock
        members = self._rooms.get(room)
        if members is None:
            return
        members.pop(connection, None)
        if self._room_of.get(connection) == room:
            del self._room_of[connection]
        if not members:
            del self._rooms[room]
            logger.debug(f"Room {room} is empty, removed")
