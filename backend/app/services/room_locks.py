from __future__ import annotations

import asyncio
from threading import Lock


class RoomLocks:
    """One ``asyncio.Lock`` per room id, created on first use.

    Mutations of a room's image namespace hold the room's lock so that two
    requests in the same worker never interleave their phases.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._guard = Lock()

    def for_room(self, room_id: str) -> asyncio.Lock:
        with self._guard:
            lock = self._locks.get(room_id)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[room_id] = lock
            return lock


room_locks = RoomLocks()


__all__ = ["RoomLocks", "room_locks"]
