"""
Session Manager
---------------

This module is what handles the lifecycle of every rental session in the shop.

Responsibilities
================

- starting a session, charging the member's deposit up front
- pausing, resuming and extending a running timer
- ending a session, billed from the usage the activity ledger reconstructs
- cancelling a session, waiving the fee
- ending sessions whose timer ran out (on behalf of the expiry sweeper)
- reconciling timers and sessions on startup

Every command runs under the lock of its device, and its database writes
(session, device, wallet, ledger) are applied in a single transaction.
Events are emitted on the manager's hub once the transaction is committed.
"""

from datetime import datetime
from typing import Callable, NamedTuple, Optional, Union

from tortoise.transactions import in_transaction

from psrental import logger
from psrental.errors import NotFoundError, ConflictError, UnauthorizedError, InvalidInputError
from psrental.events import EventHub, EventList
from psrental.models import Device, Session, SessionActivity
from psrental.models.util import (
    TimerStatus, SessionStatus, PaymentType, ActivityType, FundingSource,
    ChargeType, ChargeMethod, resolve_id, as_utc, utcnow
)
from psrental.pricing import get_price
from psrental.service.access.devices import get_device, get_live_devices
from psrental.service.access.members import get_member, verify_pin
from psrental.service.access.sessions import get_active_session, get_active_sessions
from psrental.service.billing import (
    Wallet, DepositWallet, PaymentLedger, DummyPaymentLedger, RateCard, DatabaseRateCard
)
from psrental.service.ledger import ActivityLedger, compute_usage_seconds
from psrental.service.locks import DeviceLocks
from psrental.service.rebuildable import Rebuildable


class SessionEvent(EventList):

    def session_started(self, session: Session, device: Device):
        """A new session was started and the device timer is running."""

    def session_paused(self, session: Session, device: Device):
        """The timer of a session was stopped."""

    def session_resumed(self, session: Session, device: Device):
        """The timer of a session was restarted."""

    def time_added(self, session: Session, device: Device, remaining: int):
        """A session was extended, and now has ``remaining`` seconds left."""

    def session_ended(self, session: Session, device: Device, receipt: "Receipt"):
        """A session was ended and billed."""

    def session_cancelled(self, session: Session, device: Device):
        """A session was ended without charge."""


class Receipt(NamedTuple):
    """The outcome of ending a session."""
    session: Session
    usage: int
    """The seconds the device was actually in use."""
    refund: int
    """The amount credited back to the member's deposit."""
    amount_due: int
    """The amount the cashier still has to take (products, and the rental fee of a pay-at-end session)."""


class TimerState(NamedTuple):
    status: TimerStatus
    remaining: Optional[int]
    elapsed: int


class SessionManager(Rebuildable):
    """
    Drives the timer of each device through ``idle -> running <-> paused -> ended``.

    The timer fields on the device are only a snapshot for cheap reads. When a
    session ends, its usage is reconstructed from the activity ledger, so a client
    that lost its connection and missed a stop or resume is still billed right.

    :param clock: Returns the current (aware) time. Tests pass their own.
    """

    def __init__(
        self, *, wallet: Wallet = None, payments: PaymentLedger = None, rate_card: RateCard = None,
        ledger: ActivityLedger = None, clock: Callable[[], datetime] = utcnow
    ):
        self._clock = clock
        self.wallet = wallet if wallet is not None else DepositWallet()
        self.payments = payments if payments is not None else DummyPaymentLedger()
        self.rate_card = rate_card if rate_card is not None else DatabaseRateCard()
        self.ledger = ledger if ledger is not None else ActivityLedger(clock)
        self.locks = DeviceLocks()
        self.hub = EventHub(SessionEvent)

    async def start(
        self, device: Union[Device, str], duration: Optional[int] = None, *,
        member_id: int = None, pin: str = None,
        shift_id: int = None, user_id: int = None, method: ChargeMethod = ChargeMethod.CASH
    ) -> Session:
        """
        Starts a session on a device.

        :param duration: The booked seconds, or ``None`` to pay at the end for whatever is used.
        :param member_id: The member paying from their deposit. Members must book a duration.
        :param pin: The member's PIN. It is checked when given.
        :raises InvalidInputError: If the duration is malformed or costs nothing.
        :raises NotFoundError: If the device, its category or the member do not exist.
        :raises UnauthorizedError: If the PIN does not match.
        :raises ConflictError: If the device already has an active session.
        :raises InsufficientFundsError: If the member's deposit can not cover the session.
        """
        if duration is not None and not _is_positive_int(duration):
            raise InvalidInputError("Duration must be a positive number of seconds.", {"duration": duration})
        if member_id is not None and duration is None:
            raise InvalidInputError("Member sessions must be booked for a duration.", {"member_id": member_id})

        device_id = resolve_id(device)

        async with self.locks.hold(device_id):
            device = await self._get_device(device_id)
            category = await self.rate_card.lookup(device.category_id)

            member = None
            if member_id is not None:
                member = await get_member(member_id)
                if member is None:
                    raise NotFoundError("Member not found.", {"member_id": member_id})
                if pin is not None and not await verify_pin(member, pin):
                    raise UnauthorizedError("Invalid PIN.", {"member_id": member_id})

            active = await get_active_session(device_id)
            if active is not None:
                raise ConflictError("Device already has an active session.", {"session_id": active.id})
            if member is not None and device.is_live:
                raise ConflictError("Device timer is already running.", {"timer_status": device.timer_status})

            payment_type = PaymentType.END if duration is None else PaymentType.UPFRONT
            cost = None
            if payment_type is PaymentType.UPFRONT:
                cost = get_price(duration, category)
                if cost <= 0:
                    raise InvalidInputError("The booked duration has no cost.", {"duration": duration, "cost": cost})

            now = self._clock()
            async with in_transaction() as connection:
                balance = None
                if member is not None:
                    balance = await self.wallet.debit(member, cost, using_db=connection)

                session = await Session.create(
                    device_id=device_id, member_id=member_id, start=now, duration=duration, cost=cost,
                    payment_type=payment_type, status=SessionStatus.ACTIVE,
                    is_member_transaction=member is not None, using_db=connection
                )

                device.timer_status = TimerStatus.RUNNING
                device.timer_start = now
                device.timer_duration = duration
                device.timer_elapsed = 0
                device.last_paused_at = None
                await device.save(using_db=connection)

                if payment_type is PaymentType.END:
                    description = "Started an unlimited session, paid at the end"
                    funding = None
                else:
                    description = f"Started a session of {_minutes(duration)} minutes for {cost}"
                    funding = FundingSource.DEPOSIT if member is not None else FundingSource.CASH

                await self.ledger.append(
                    session, ActivityType.START, timestamp=now, description=description,
                    duration_added=duration, cost_added=cost, payment_method=funding,
                    previous_balance=balance.previous if balance else None,
                    new_balance=balance.new if balance else None,
                    device_status=device.timer_status.value, using_db=connection
                )

        if member is None and payment_type is PaymentType.UPFRONT:
            await self.payments.record(
                session=session, amount=cost, type=ChargeType.RENTAL, method=method,
                shift_id=shift_id, user_id=user_id,
                note=f"Rental of {device.name} for {_minutes(duration)} minutes"
            )

        session.device = device
        logger.info("Started session %s on %s (%s)", session.id, device.id, payment_type.value)
        self.hub.emit(SessionEvent.session_started, session, device)
        return session

    async def stop(self, device: Union[Device, str]) -> Device:
        """
        Pauses the timer of a device. Stopping a timer that is not running does nothing.

        :raises NotFoundError: If the device (or its running session) does not exist.
        """
        device_id = resolve_id(device)

        async with self.locks.hold(device_id):
            device = await self._get_device(device_id)
            if device.timer_status is not TimerStatus.RUNNING:
                logger.debug("Ignoring stop on %s, the timer is %s", device_id, device.timer_status.value)
                return device

            session = await self._get_active_session(device)
            now = self._clock()
            elapsed = _seconds_between(device.timer_start, now)

            async with in_transaction() as connection:
                # the duration field holds what is left once the timer is paused
                if device.timer_duration is not None:
                    device.timer_duration = max(0, device.timer_duration - elapsed)
                device.timer_elapsed = elapsed
                device.timer_status = TimerStatus.PAUSED
                device.timer_start = None
                device.last_paused_at = now
                await device.save(using_db=connection)

                await self.ledger.append(
                    session, ActivityType.STOP, timestamp=now,
                    description=f"Paused after {elapsed} seconds", device_status=device.timer_status.value,
                    metadata={"remaining": device.timer_duration}, using_db=connection
                )

        logger.info("Paused session %s on %s", session.id, device_id)
        self.hub.emit(SessionEvent.session_paused, session, device)
        return device

    async def resume(self, device: Union[Device, str]) -> Device:
        """
        Restarts a paused timer.

        :raises NotFoundError: If the device (or its session) does not exist.
        :raises ConflictError: If the timer is not paused.
        """
        device_id = resolve_id(device)

        async with self.locks.hold(device_id):
            device = await self._get_device(device_id)
            if device.timer_status is not TimerStatus.PAUSED:
                raise ConflictError("Only a paused timer can be resumed.", {"timer_status": device.timer_status})

            session = await self._get_active_session(device)
            now = self._clock()

            async with in_transaction() as connection:
                device.timer_status = TimerStatus.RUNNING
                device.timer_start = now
                device.timer_elapsed = 0
                device.last_paused_at = None
                await device.save(using_db=connection)

                await self.ledger.append(
                    session, ActivityType.RESUME, timestamp=now, description="Resumed",
                    device_status=device.timer_status.value,
                    metadata={"remaining": device.timer_duration}, using_db=connection
                )

        logger.info("Resumed session %s on %s", session.id, device_id)
        self.hub.emit(SessionEvent.session_resumed, session, device)
        return device

    async def add_time(
        self, device: Union[Device, str], additional_minutes: int, *, use_deposit: bool = False,
        shift_id: int = None, user_id: int = None, method: ChargeMethod = ChargeMethod.CASH
    ) -> Session:
        """
        Extends a running session.

        The increment is the price of the new total minus what was already charged,
        so an extension never costs more than booking the total up front.

        :param use_deposit: Take the increment from the member's deposit instead of in cash.
        :raises InvalidInputError: If the minutes are malformed, or the session is unlimited.
        :raises ConflictError: If the timer is not running.
        :raises InsufficientFundsError: If the deposit can not cover the increment.
        """
        if not _is_positive_int(additional_minutes):
            raise InvalidInputError("Minutes must be a positive number.", {"minutes": additional_minutes})

        device_id = resolve_id(device)

        async with self.locks.hold(device_id):
            device = await self._get_device(device_id)
            if device.timer_status is not TimerStatus.RUNNING:
                raise ConflictError("Time can only be added to a running timer.", {"timer_status": device.timer_status})

            session = await self._get_active_session(device)
            if session.is_unlimited or device.is_unlimited:
                raise InvalidInputError("An unlimited session can not be extended.", {"session_id": session.id})
            if use_deposit and session.member_id is None:
                raise InvalidInputError("Only a member session can be paid from a deposit.", {"session_id": session.id})

            category = await self.rate_card.lookup(device.category_id)
            now = self._clock()

            additional = additional_minutes * 60
            total = session.duration + additional
            cost = get_price(total, category)
            increment = max(0, cost - (session.cost or 0))

            elapsed = _seconds_between(device.timer_start, now)
            remaining = max(0, device.timer_duration - elapsed) + additional
            funding = FundingSource.DEPOSIT if use_deposit else FundingSource.CASH

            async with in_transaction() as connection:
                balance = None
                if funding is FundingSource.DEPOSIT:
                    balance = await self.wallet.debit(session.member_id, increment, using_db=connection)

                session.duration = total
                session.cost = (session.cost or 0) + increment
                await session.save(using_db=connection)

                device.timer_duration = remaining
                device.timer_start = now
                device.timer_elapsed = 0
                await device.save(using_db=connection)

                await self.ledger.append(
                    session, ActivityType.ADD_TIME, timestamp=now,
                    description=f"Added {additional_minutes} minutes for {increment}",
                    duration_added=additional, cost_added=increment, payment_method=funding,
                    previous_balance=balance.previous if balance else None,
                    new_balance=balance.new if balance else None,
                    device_status=device.timer_status.value,
                    metadata={"remaining": remaining, "total_duration": total}, using_db=connection
                )

        if funding is FundingSource.CASH and increment > 0:
            await self.payments.record(
                session=session, amount=increment, type=ChargeType.RENTAL, method=method,
                shift_id=shift_id, user_id=user_id,
                note=f"Added {additional_minutes} minutes to {device.name}"
            )

        logger.info("Added %s minutes to session %s on %s", additional_minutes, session.id, device_id)
        self.hub.emit(SessionEvent.time_added, session, device, remaining)
        return session

    async def end(
        self, device: Union[Device, str], *, extra_cost: int = 0, reason: str = "manual",
        shift_id: int = None, user_id: int = None, method: ChargeMethod = ChargeMethod.CASH
    ) -> Receipt:
        """
        Ends the session on a device and bills it.

        :param extra_cost: The price of products consumed during the session, owed at the end.
        :raises NotFoundError: If the device has no active session.
        :raises ConflictError: If the timer is neither running nor paused.
        """
        if not isinstance(extra_cost, int) or isinstance(extra_cost, bool) or extra_cost < 0:
            raise InvalidInputError("Extra cost must be a non-negative amount.", {"extra_cost": extra_cost})

        device_id = resolve_id(device)

        async with self.locks.hold(device_id):
            device = await self._get_device(device_id)
            session = await self._get_active_session(device)
            if not device.is_live:
                raise ConflictError("Only a running or paused timer can be ended.", {"timer_status": device.timer_status})

            return await self._end(
                device, session, reason=reason, extra_cost=extra_cost,
                shift_id=shift_id, user_id=user_id, method=method
            )

    async def expire(self, device: Union[Device, str], grace: int) -> Optional[Receipt]:
        """
        Ends the session on a device if its timer ran out more than ``grace`` seconds ago.

        The device is checked again under its lock, since a command may have
        extended or ended the session since the sweeper looked at it. An expired
        member session is not refunded: its whole allotment was used.

        :return: The receipt, or ``None`` if the timer had not expired.
        """
        device_id = resolve_id(device)

        async with self.locks.hold(device_id):
            device = await get_device(device_id)
            if device is None or device.timer_status is not TimerStatus.RUNNING or device.is_unlimited:
                return None

            now = self._clock()
            elapsed = _seconds_between(device.timer_start, now)
            if elapsed < device.timer_duration + grace:
                return None

            session = await get_active_session(device_id)
            if session is None:
                logger.warning("Timer on %s expired without a session, resetting it", device_id)
                device.reset_timer(TimerStatus.IDLE)
                await device.save()
                return None

            logger.info("Timer on %s ran out %ss ago, ending session %s",
                        device_id, elapsed - device.timer_duration, session.id)
            return await self._end(device, session, reason="expired", expired=True)

    async def cancel(self, device: Union[Device, str], reason: str = None) -> Session:
        """
        Ends the session on a device, effective immediately, waiving the rental fee.
        A member's upfront charge is returned to their deposit in full.

        :raises NotFoundError: If the device has no active session.
        :raises ConflictError: If the timer is neither running nor paused.
        """
        device_id = resolve_id(device)

        async with self.locks.hold(device_id):
            device = await self._get_device(device_id)
            session = await self._get_active_session(device)
            if not device.is_live:
                raise ConflictError("Only a running or paused timer can be cancelled.", {"timer_status": device.timer_status})

            now = self._clock()
            usage = compute_usage_seconds(await self.ledger.read_all(session), session.start, now)
            refund = (session.cost or 0) if session.member_id is not None else 0

            async with in_transaction() as connection:
                balance = None
                if refund > 0:
                    balance = await self.wallet.credit(session.member_id, refund, using_db=connection)

                session.end = now
                session.duration = usage
                session.cost = 0
                session.status = SessionStatus.CANCELLED
                await session.save(using_db=connection)

                device.reset_timer(TimerStatus.ENDED)
                await device.save(using_db=connection)

                await self.ledger.append(
                    session, ActivityType.END, timestamp=now, description="Cancelled, fee waived",
                    payment_method=FundingSource.DEPOSIT if balance else None,
                    previous_balance=balance.previous if balance else None,
                    new_balance=balance.new if balance else None,
                    device_status=device.timer_status.value,
                    metadata={"reason": "cancelled", "note": reason, "usage": usage, "refund": refund},
                    using_db=connection
                )

        session.device = device
        logger.info("Cancelled session %s on %s", session.id, device_id)
        self.hub.emit(SessionEvent.session_cancelled, session, device)
        return session

    async def mark_disconnected(
        self, device: Union[Device, str], reason: str = None, source: str = None
    ) -> Optional[SessionActivity]:
        """
        Records that the control channel of a live device dropped.

        The session keeps running so the client can carry on offline;
        billing is unaffected since usage is folded from the ledger.

        :raises ConflictError: If the device has no running or paused timer.
        """
        device_id = resolve_id(device)

        async with self.locks.hold(device_id):
            device = await self._get_device(device_id)
            if not device.is_live:
                raise ConflictError("No session is running on this device.", {"timer_status": device.timer_status})

            session = await self._get_active_session(device)
            now = self._clock()

            async with in_transaction() as connection:
                if device.timer_status is TimerStatus.RUNNING:
                    device.timer_elapsed = _seconds_between(device.timer_start, now)
                    await device.save(using_db=connection)

                activity = await self.ledger.append(
                    session, ActivityType.DISCONNECT, timestamp=now,
                    description=f"Disconnected: {reason or 'unknown reason'}",
                    device_status=device.timer_status.value,
                    metadata={"reason": reason, "source": source, "elapsed": device.timer_elapsed},
                    using_db=connection
                )

        logger.warning("Device %s disconnected during session %s (%s)", device_id, session.id, reason or "unknown")
        return activity

    def timer_state(self, device: Device) -> TimerState:
        """Gets the remaining and elapsed seconds of a device's timer, for display only."""
        if device.timer_status is TimerStatus.RUNNING:
            elapsed = _seconds_between(device.timer_start, self._clock())
            remaining = None if device.is_unlimited else max(0, device.timer_duration - elapsed)
        elif device.timer_status is TimerStatus.PAUSED:
            elapsed = device.timer_elapsed
            remaining = device.timer_duration
        else:
            elapsed = 0
            remaining = None

        return TimerState(device.timer_status, remaining, elapsed)

    async def _end(
        self, device: Device, session: Session, *, reason: str, expired: bool = False, extra_cost: int = 0,
        shift_id: int = None, user_id: int = None, method: ChargeMethod = ChargeMethod.CASH
    ) -> Receipt:
        """Bills and closes a session. The caller holds the device's lock."""
        category = await self.rate_card.lookup(device.category_id)
        now = self._clock()

        usage = compute_usage_seconds(await self.ledger.read_all(session), session.start, now)
        if expired and session.duration is not None:
            usage = min(usage, session.duration)

        refund = 0
        if session.is_unlimited:
            final_cost = get_price(usage, category)
        else:
            final_cost = session.cost or 0
            if session.member_id is not None and not expired:
                remaining = max(0, session.duration - usage)
                refund = min(final_cost, get_price(remaining, category))
                final_cost -= refund

        async with in_transaction() as connection:
            balance = None
            if refund > 0:
                balance = await self.wallet.credit(session.member_id, refund, using_db=connection)

            session.end = now
            session.duration = usage
            session.cost = final_cost
            session.status = SessionStatus.COMPLETED
            await session.save(using_db=connection)

            device.reset_timer(TimerStatus.ENDED)
            await device.save(using_db=connection)

            await self.ledger.append(
                session, ActivityType.END, timestamp=now,
                description=f"Ended after {usage} seconds for {final_cost}",
                payment_method=FundingSource.DEPOSIT if balance else None,
                previous_balance=balance.previous if balance else None,
                new_balance=balance.new if balance else None,
                device_status=device.timer_status.value,
                metadata={"reason": reason, "usage": usage, "refund": refund, "final_cost": final_cost},
                using_db=connection
            )

        rental_due = final_cost if session.is_unlimited else 0
        if rental_due > 0:
            await self.payments.record(
                session=session, amount=rental_due, type=ChargeType.RENTAL, method=method,
                shift_id=shift_id, user_id=user_id, note=f"Session on {device.name} ended ({reason})"
            )
        if extra_cost > 0:
            await self.payments.record(
                session=session, amount=extra_cost, type=ChargeType.FNB, method=method,
                shift_id=shift_id, user_id=user_id, note=f"Products during the session on {device.name}"
            )

        amount_due = rental_due + extra_cost

        session.device = device
        receipt = Receipt(session, usage, refund, amount_due)
        logger.info("Ended session %s on %s: %ss used, %s charged, %s refunded",
                    session.id, device.id, usage, final_cost, refund)
        self.hub.emit(SessionEvent.session_ended, session, device, receipt)
        return receipt

    async def _rebuild(self):
        """
        Reconciles device timers with sessions after a restart.

        A live timer without a session is reset to idle. An open session whose
        device is not live is paused, so that it can be resumed or ended. The
        pause is written to the ledger, so the downtime is not billed.
        """
        live_devices = await get_live_devices()
        active_sessions = await get_active_sessions()
        sessions_by_device = {session.device_id: session for session in active_sessions}
        live_ids = {device.id for device in live_devices}

        orphaned_timers = 0
        for device in live_devices:
            if device.id not in sessions_by_device:
                async with self.locks.hold(device.id):
                    logger.warning("Device %s has a %s timer but no session, resetting it",
                                   device.id, device.timer_status.value)
                    device.reset_timer(TimerStatus.IDLE)
                    await device.save()
                orphaned_timers += 1

        stranded_sessions = 0
        for device_id, session in sessions_by_device.items():
            if device_id in live_ids:
                continue
            async with self.locks.hold(device_id):
                device = await get_device(device_id)
                if device is None or device.is_live:
                    continue
                await self._pause_stranded(device, session)
            stranded_sessions += 1

        logger.info("Rebuilt %s active sessions (%s orphaned timers reset, %s sessions paused)",
                    len(active_sessions), orphaned_timers, stranded_sessions)

    async def _pause_stranded(self, device: Device, session: Session):
        """Pauses an open session whose device lost its timer. The caller holds the device's lock."""
        now = self._clock()
        usage = compute_usage_seconds(await self.ledger.read_all(session), session.start, now)
        remaining = None if session.is_unlimited else max(0, session.duration - usage)

        logger.warning("Session %s is open but %s is %s, pausing it with %s seconds used",
                       session.id, device.id, device.timer_status.value, usage)

        async with in_transaction() as connection:
            device.timer_status = TimerStatus.PAUSED
            device.timer_start = None
            device.timer_duration = remaining
            device.timer_elapsed = usage
            device.last_paused_at = now
            await device.save(using_db=connection)

            await self.ledger.append(
                session, ActivityType.STOP, timestamp=now, description="Paused on restart",
                device_status=device.timer_status.value,
                metadata={"reason": "restart", "remaining": remaining, "usage": usage}, using_db=connection
            )

    async def _get_device(self, device_id: str) -> Device:
        device = await get_device(device_id)
        if device is None:
            raise NotFoundError("Device not found.", {"device_id": device_id})
        return device

    @staticmethod
    async def _get_active_session(device: Device) -> Session:
        session = await get_active_session(device)
        if session is None:
            raise NotFoundError("Device has no active session.", {"device_id": device.id})
        return session


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _seconds_between(since: Optional[datetime], until: datetime) -> int:
    if since is None:
        return 0
    return max(0, int((as_utc(until) - as_utc(since)).total_seconds()))


def _minutes(seconds: int) -> int:
    return seconds // 60
