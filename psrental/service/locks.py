"""
Device Locks
------------

Every transition reads the timer fields of a device, derives a new value
from them and writes it back, so two transitions on the same device must
never interleave. Commands and the expiry sweeper take the same lock.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class DeviceLocks:
    """
    A mutex per device id. A lock only exists while some transition holds
    or waits for it, so ids that are never seen again are not kept around.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, device_id: str) -> AsyncIterator[None]:
        """
        Holds the lock of a device, to be used as ``async with locks.hold(device_id):``.
        """
        lock = self._locks.get(device_id)
        if lock is None:
            lock = self._locks[device_id] = asyncio.Lock()
        self._holders[device_id] = self._holders.get(device_id, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._holders[device_id] -= 1
            if not self._holders[device_id]:
                del self._holders[device_id]
                del self._locks[device_id]

    def locked(self, device_id: str) -> bool:
        """Checks if a transition is currently running on the device."""
        lock = self._locks.get(device_id)
        return lock is not None and lock.locked()

    def __len__(self):
        return len(self._locks)
