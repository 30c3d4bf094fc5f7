import asyncio
import logging
import random
from typing import Dict, Iterator, List, Optional, Tuple

from config import settings
from models.errors import PreconditionFailed
from models.game import Room

logger = logging.getLogger(__name__)

ROOM_ID_MIN = 100000
ROOM_ID_MAX = 999999


class RoomStore:
    """
    In-memory room registry: the single source of truth for live rooms.

    One instance per process, created by the app lifespan. Rooms are stored
    as whole snapshots: callers put() the Room returned by the game master
    rather than mutating the stored one.

    Transitions on one room are serialized through lock(room_id); asyncio is
    single-threaded, but the gateway awaits socket sends between a
    transition and the next command, and the lock keeps the
    read → transition → persist → notify sequence whole.
    """

    def __init__(self, room_id_attempts: Optional[int] = None):
        self._rooms: Dict[str, Room] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._room_id_attempts = (
            room_id_attempts if room_id_attempts is not None else settings.room_id_attempts
        )

    # ── CRUD ──────────────────────────────────────────────────────────────────

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def put(self, room: Room) -> None:
        self._rooms[room.room_id] = room

    def delete(self, room_id: str) -> None:
        self._rooms.pop(room_id, None)
        self._locks.pop(room_id, None)

    def items(self) -> List[Tuple[str, Room]]:
        """Snapshot of (room_id, room) pairs, safe to iterate while deleting."""
        return list(self._rooms.items())

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._rooms))

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    # ── Room ids ──────────────────────────────────────────────────────────────

    def new_room_id(self, rng: Optional[random.Random] = None) -> str:
        """Draw a 6-digit id not used by any live room, redrawing on collision."""
        rng = rng or random.SystemRandom()
        for _ in range(self._room_id_attempts):
            room_id = str(rng.randint(ROOM_ID_MIN, ROOM_ID_MAX))
            if room_id not in self._rooms:
                return room_id
            logger.debug(f"Room id {room_id} already taken: redrawing")
        logger.warning(f"No free room id after {self._room_id_attempts} attempts ({len(self)} live rooms)")
        raise PreconditionFailed("Could not allocate a room id, try again")

    # ── Locking ───────────────────────────────────────────────────────────────

    def lock(self, room_id: str) -> asyncio.Lock:
        """Return (or create) the lock that serializes transitions on room_id."""
        if room_id not in self._locks:
            self._locks[room_id] = asyncio.Lock()
        return self._locks[room_id]

    def lock_existing(self, room_id: str) -> Optional[asyncio.Lock]:
        """Like lock(), but returns None for ids with no live room."""
        if room_id not in self._rooms:
            return None
        return self.lock(room_id)

    def discard_lock(self, room_id: str) -> None:
        """Drop the lock entry of a room that is no longer live."""
        if room_id not in self._rooms:
            self._locks.pop(room_id, None)

    def lock_count(self) -> int:
        return len(self._locks)
