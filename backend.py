from typing import Dict, List, Optional, Set, Tuple
from logging_config import get_logger

logger = get_logger(__name__)


class RoomRegistry:
    """In-memory room membership, scoped to the process lifetime.

    Two indices are kept in step: room -> set of connection ids and
    connection id -> room. Every mutation goes through join() or leave(),
    and neither awaits, so on a single event loop they never interleave.
    """

    def __init__(self):
        self._members: Dict[str, Set[str]] = {}
        self._room_of: Dict[str, str] = {}
        logger.info("Initializing in-memory RoomRegistry")

    def join(self, connection_id: str, room_id: str) -> Tuple[List[str], Optional[Tuple[str, List[str]]]]:
        """Add a connection to a room.

        Returns the other members to notify about the join, plus the
        (previous_room, remaining_members) pair when the connection had to
        leave another room first. Re-joining the same room changes nothing.
        """
        if not isinstance(room_id, str) or not room_id:
            raise ValueError("room name must be a non-empty string")

        previous = self._room_of.get(connection_id)
        if previous == room_id:
            logger.debug(f"Connection {connection_id} already in room {room_id}")
            return [], None

        departed = None
        if previous is not None:
            logger.info(f"Connection {connection_id} switching from room {previous} to {room_id}")
            departed = self.leave(connection_id)

        others = sorted(self._members.get(room_id, ()))
        self._members.setdefault(room_id, set()).add(connection_id)
        self._room_of[connection_id] = room_id
        logger.debug(f"Connection {connection_id} added to room {room_id} ({len(others) + 1} members)")
        return others, departed

    def leave(self, connection_id: str) -> Optional[Tuple[str, List[str]]]:
        """Remove a connection from its room. Empty rooms are dropped."""
        room_id = self._room_of.pop(connection_id, None)
        if room_id is None:
            return None

        members = self._members.get(room_id, set())
        members.discard(connection_id)
        remaining = sorted(members)
        if not members:
            self._members.pop(room_id, None)
            logger.info(f"Room {room_id} is empty and removed")
        logger.debug(f"Connection {connection_id} removed from room {room_id} ({len(remaining)} remaining)")
        return room_id, remaining

    def members(self, room_id: str) -> Set[str]:
        return set(self._members.get(room_id, ()))

    def room_of(self, connection_id: str) -> Optional[str]:
        return self._room_of.get(connection_id)

    def rooms(self) -> Dict[str, int]:
        """Room name -> member count for every non-empty room."""
        return {room_id: len(members) for room_id, members in self._members.items()}

    def clear(self):
        self._members.clear()
        self._room_of.clear()


registry = RoomRegistry()
