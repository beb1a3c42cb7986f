"""
Actuator
--------

Switches the power relay of a console. The database is the authority on
whether a session is running: relay commands are sent after the transition
is committed, with a short timeout, and a failed command is only logged.

The :class:`ActuatorBridge` listens to the session manager's hub and turns
its events into relay commands.
"""

import abc
import asyncio
from datetime import timedelta
from typing import Optional, Set

import aiohttp
from aiobreaker import CircuitBreaker, CircuitBreakerError

from psrental import logger
from psrental.errors import ActuatorFailure
from psrental.events import EventHub
from psrental.models import Device, Session
from psrental.service.manager.session_manager import SessionEvent, Receipt

RelayBreaker = CircuitBreaker(fail_max=5, timeout_duration=timedelta(seconds=30))
"""Stops hammering the relay gateway once it is clearly down."""


class Actuator(abc.ABC):

    @abc.abstractmethod
    async def power_on(self, device: Device, duration: Optional[int]):
        """
        Powers a device on.

        :param duration: The seconds the device may stay on, or ``None`` for no limit.
        """

    @abc.abstractmethod
    async def power_off(self, device: Device):
        pass

    async def close(self):
        pass


class DummyActuator(Actuator):
    """Used when no relay gateway is configured."""

    async def power_on(self, device: Device, duration: Optional[int]):
        logger.debug("Relay %s on for %s (%s)", device.relay_number, device.id, duration or "unlimited")

    async def power_off(self, device: Device):
        logger.debug("Relay %s off for %s", device.relay_number, device.id)


class RelayGatewayActuator(Actuator):
    """Sends relay commands to an HTTP relay gateway."""

    def __init__(self, url: str, session: aiohttp.ClientSession = None):
        self._url = url.rstrip("/")
        self._session = session

    async def power_on(self, device: Device, duration: Optional[int]):
        await self._send("on", device, duration=duration)

    async def power_off(self, device: Device):
        await self._send("off", device)

    @RelayBreaker
    async def _send(self, command: str, device: Device, **payload):
        if device.relay_number is None:
            raise ActuatorFailure(f"Device {device.id} has no relay.", {"device_id": device.id})

        if self._session is None:
            self._session = aiohttp.ClientSession()

        payload.update({"device_id": device.id, "relay": device.relay_number})
        async with self._session.post(f"{self._url}/relays/{command}", json=payload) as response:
            if response.status >= 400:
                raise ActuatorFailure(f"Relay gateway answered {response.status}.", {"device_id": device.id})

    async def close(self):
        if self._session is not None:
            await self._session.close()


class ActuatorBridge:
    """
    Sends a relay command for every session transition.

    Commands are fire and forget. Each is given ``timeout`` seconds,
    and the bridge keeps track of the ones in flight so that they can
    be awaited on shutdown.
    """

    def __init__(self, hub: EventHub, actuator: Actuator, timeout: float = 3):
        self.actuator = actuator
        self.failures = 0
        self._timeout = timeout
        self._pending: Set[asyncio.Future] = set()

        hub.subscribe(SessionEvent.session_started, self._session_started)
        hub.subscribe(SessionEvent.session_paused, self._session_paused)
        hub.subscribe(SessionEvent.session_resumed, self._session_resumed)
        hub.subscribe(SessionEvent.time_added, self._time_added)
        hub.subscribe(SessionEvent.session_ended, self._session_ended)
        hub.subscribe(SessionEvent.session_cancelled, self._session_cancelled)

    def _session_started(self, session: Session, device: Device):
        self._schedule(self.actuator.power_on(device, device.timer_duration), "power on", device)

    def _session_paused(self, session: Session, device: Device):
        self._schedule(self.actuator.power_off(device), "power off", device)

    def _session_resumed(self, session: Session, device: Device):
        self._schedule(self.actuator.power_on(device, device.timer_duration), "power on", device)

    def _time_added(self, session: Session, device: Device, remaining: int):
        self._schedule(self.actuator.power_on(device, remaining), "extend", device)

    def _session_ended(self, session: Session, device: Device, receipt: Receipt):
        self._schedule(self.actuator.power_off(device), "power off", device)

    def _session_cancelled(self, session: Session, device: Device):
        self._schedule(self.actuator.power_off(device), "power off", device)

    def _schedule(self, command, name: str, device: Device):
        task = asyncio.ensure_future(self._run(command, name, device))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run(self, command, name: str, device: Device):
        try:
            await asyncio.wait_for(command, self._timeout)
        except asyncio.TimeoutError:
            self.failures += 1
            logger.warning("Relay %s for %s timed out after %ss", name, device.id, self._timeout)
        except CircuitBreakerError:
            self.failures += 1
            logger.warning("Relay %s for %s skipped, the relay gateway is unavailable", name, device.id)
        except ActuatorFailure as error:
            self.failures += 1
            logger.warning("Relay %s for %s failed: %s", name, device.id, error.message)
        except aiohttp.ClientError as error:
            self.failures += 1
            logger.warning("Relay %s for %s failed: %s", name, device.id, error)
        else:
            logger.debug("Relay %s for %s done", name, device.id)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def close(self):
        """Waits for the commands in flight, then releases the actuator."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self.actuator.close()
