import asyncio
from dataclasses import dataclass, field
from typing import List

from constants import SEND_TIMEOUT
from errors import SendError
from logging_config import get_logger
from registry import Member, RoomRegistry

logger = get_logger(__name__)


@dataclass
class DeliveryReport:
    attempted: int = 0
    delivered: int = 0
    evicted: List[Member] = field(default_factory=list)


class Broadcaster:
    """Fans a message out to every member of a room.

    Works on a registry snapshot, so no registry lock is held while sockets
    are written. A failing member is evicted after the pass and never stops
    delivery to the others. A write that takes longer than ``send_timeout``
    seconds counts as a failure, so a stalled reader cannot hold up the room.
    """

    def __init__(self, registry: RoomRegistry, send_timeout: float = SEND_TIMEOUT):
        self.registry = registry
        self.send_timeout = send_timeout

    async def broadcast(self, room: str, message: str) -> DeliveryReport:
        members = self.registry.snapshot(room)
        if not members:
            logger.debug(f"No members in room {room}, nothing to broadcast")
            return DeliveryReport()

        logger.debug(f"Broadcasting to {len(members)} members in room {room}")
        results = await asyncio.gather(*(self._deliver(room, member, message) for member in members))

        evicted = [member for member, delivered in zip(members, results) if not delivered]
        for member in evicted:
            self.registry.leave(room, member)
        if evicted:
            logger.info(f"Evicted {len(evicted)} dead connections from room {room}")

        report = DeliveryReport(attempted=len(members), delivered=len(members) - len(evicted), evicted=evicted)
        logger.debug(f"Broadcast to room {room}: {report.delivered}/{report.attempted} delivered")
        return report

    async def _deliver(self, room: str, member: Member, message: str) -> bool:
        if not member.connection.is_open():
            logger.debug(f"Skipping closed connection of {member.username} in room {room}")
            return False
        try:
            await asyncio.wait_for(member.connection.send(message), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Send to {member.username} in room {room} timed out after {self.send_timeout}s")
            return False
        except SendError as e:
            logger.warning(f"Failed to send to {member.username} in room {room}: {e}")
            return False
        return True
