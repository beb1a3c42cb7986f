"""
Expiry Sweeper
--------------

Ends sessions whose timer ran out while nobody was around to end them,
for example when the console lost its connection and the client never
came back. A timer is only swept once it has been expired for the grace
period, since a client that was offline may still sync time it added.

The sweeper ends sessions through :meth:`SessionManager.expire`, so an
expired session is billed exactly like one ended at the counter.
"""

import asyncio
from datetime import datetime
from typing import Callable, List

from psrental import logger
from psrental.models import Device
from psrental.models.util import TimerStatus, as_utc, utcnow
from psrental.service.access.devices import get_devices
from psrental.service.manager.session_manager import SessionManager, Receipt


class ExpirySweeper:
    """
    Periodically ends expired sessions.

    :param grace: The seconds a timer may be expired before it is swept.
    :param interval: The seconds between two sweeps.
    """

    def __init__(self, session_manager: SessionManager, *, grace: int = 300, interval: float = 30,
                 clock: Callable[[], datetime] = utcnow):
        self._session_manager = session_manager
        self._clock = clock
        self.grace = grace
        self.interval = interval
        self._stopping = asyncio.Event()
        self._task: asyncio.Future = None

    def start(self):
        """Schedules the sweeper on the running loop."""
        self._stopping.clear()
        self._task = asyncio.ensure_future(self.run())

    async def run(self):
        """Sweeps at most once every ``interval`` seconds until stopped."""
        logger.info("Sweeping expired sessions every %ss (grace %ss)", self.interval, self.grace)

        while not self._stopping.is_set():
            try:
                await self.sweep()
            except Exception:
                # one bad sweep must not end the loop
                logger.exception("Expiry sweep failed")

            try:
                await asyncio.wait_for(self._stopping.wait(), self.interval)
            except asyncio.TimeoutError:
                pass

    async def stop(self):
        """Lets the current sweep finish, then stops."""
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def sweep(self) -> List[Receipt]:
        """Ends every session whose timer ran out more than ``grace`` seconds ago."""
        receipts = []

        for device in await get_devices(status=TimerStatus.RUNNING):
            if self._stopping.is_set():
                break
            if not self.is_expired(device):
                continue
            if self._session_manager.locks.locked(device.id):
                logger.debug("Skipping %s, it is busy", device.id)
                continue

            receipt = await self._session_manager.expire(device, self.grace)
            if receipt is not None:
                receipts.append(receipt)

        if receipts:
            logger.info("Swept %s expired sessions", len(receipts))
        return receipts

    def is_expired(self, device: Device) -> bool:
        if device.timer_start is None or device.timer_duration is None:
            return False
        elapsed = (self._clock() - as_utc(device.timer_start)).total_seconds()
        return elapsed >= device.timer_duration + self.grace
