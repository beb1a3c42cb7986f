"""
Billing
-------

The session engine does not own money. It talks to three collaborators,
each hidden behind an abstract class so that the rest of the shop (or a
test) can swap in its own:

- a :class:`RateCard` to find the price of play on a device
- a :class:`Wallet` to debit and credit a member's deposit
- a :class:`PaymentLedger` to record what a cashier took

Wallet mutations take the connection of the transaction they belong to,
so a failed transition never leaves a debit behind.
"""

import abc
from typing import NamedTuple, Optional, Union

import sentry_sdk
from tortoise.exceptions import BaseORMException
from tortoise.expressions import F

from psrental import logger
from psrental.errors import NotFoundError, InsufficientFundsError, InvalidInputError
from psrental.models import Category, Member, Payment, Session
from psrental.models.util import ChargeType, ChargeMethod, resolve_id


class BalanceChange(NamedTuple):
    """A member's deposit before and after a wallet mutation."""
    previous: int
    new: int


class RateCard(abc.ABC):

    @abc.abstractmethod
    async def lookup(self, category_id: int, using_db=None) -> Category:
        """
        Gets the rate category a device is billed at.

        :raises NotFoundError: If there is no such category.
        """


class DatabaseRateCard(RateCard):

    async def lookup(self, category_id: int, using_db=None) -> Category:
        query = Category.filter(id=category_id)
        if using_db is not None:
            query = query.using_db(using_db)
        category = await query.first()
        if category is None:
            raise NotFoundError("Category not found.", {"category_id": category_id})
        return category


class Wallet(abc.ABC):

    @abc.abstractmethod
    async def balance(self, member: Union[Member, int], using_db=None) -> int:
        pass

    @abc.abstractmethod
    async def debit(self, member: Union[Member, int], amount: int, using_db=None) -> BalanceChange:
        """
        Takes an amount from a member's deposit.

        :raises InsufficientFundsError: If the deposit can not cover the amount.
        """

    @abc.abstractmethod
    async def credit(self, member: Union[Member, int], amount: int, using_db=None) -> BalanceChange:
        """Returns an amount to a member's deposit."""


class DepositWallet(Wallet):
    """Keeps the wallet in the ``deposit`` column of the member table."""

    async def balance(self, member: Union[Member, int], using_db=None) -> int:
        member_id = resolve_id(member)
        query = Member.filter(id=member_id)
        if using_db is not None:
            query = query.using_db(using_db)
        member = await query.first()
        if member is None:
            raise NotFoundError("Member not found.", {"member_id": member_id})
        return member.deposit

    async def debit(self, member: Union[Member, int], amount: int, using_db=None) -> BalanceChange:
        _check_amount(amount)
        member_id = resolve_id(member)
        previous = await self.balance(member_id, using_db)

        if amount > previous:
            raise InsufficientFundsError(previous, amount)

        # the guard on the balance keeps a concurrent debit from taking it below zero
        query = Member.filter(id=member_id, deposit__gte=amount)
        if using_db is not None:
            query = query.using_db(using_db)
        updated = await query.update(deposit=F("deposit") - amount)

        if not updated:
            raise InsufficientFundsError(await self.balance(member_id, using_db), amount)

        logger.info("Debited %s from the deposit of member %s", amount, member_id)
        return BalanceChange(previous, previous - amount)

    async def credit(self, member: Union[Member, int], amount: int, using_db=None) -> BalanceChange:
        _check_amount(amount)
        member_id = resolve_id(member)
        previous = await self.balance(member_id, using_db)

        query = Member.filter(id=member_id)
        if using_db is not None:
            query = query.using_db(using_db)
        await query.update(deposit=F("deposit") + amount)

        logger.info("Credited %s to the deposit of member %s", amount, member_id)
        return BalanceChange(previous, previous + amount)


def _check_amount(amount):
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
        raise InvalidInputError("Wallet amounts must be non-negative integers.", {"amount": amount})


class PaymentLedger(abc.ABC):
    """
    Records completed charges against a cashier's shift.

    Recording is best effort: an implementation logs a failure and
    returns ``None`` rather than raising, since the charge itself
    has already happened.
    """

    @abc.abstractmethod
    async def record(
        self, *, session: Optional[Union[Session, int]], amount: int,
        type: ChargeType = ChargeType.RENTAL, method: ChargeMethod = ChargeMethod.CASH,
        shift_id: int = None, user_id: int = None, note: str = None
    ) -> Optional[Payment]:
        pass


class DummyPaymentLedger(PaymentLedger):

    async def record(self, *, session, amount, type=ChargeType.RENTAL, method=ChargeMethod.CASH,
                     shift_id=None, user_id=None, note=None):
        logger.info("Payment of %s (%s, %s) for session %s not recorded", amount, type.value, method.value,
                    resolve_id(session) if session is not None else None)
        return None


class DatabasePaymentLedger(PaymentLedger):

    def __init__(self):
        self.failures = 0

    async def record(self, *, session, amount, type=ChargeType.RENTAL, method=ChargeMethod.CASH,
                     shift_id=None, user_id=None, note=None):
        session_id = resolve_id(session) if session is not None else None
        try:
            payment = await Payment.create(
                session_id=session_id, amount=amount, type=type, method=method,
                shift_id=shift_id, user_id=user_id, note=note,
            )
        except BaseORMException as error:
            self.failures += 1
            logger.exception("Could not record payment of %s for session %s", amount, session_id)
            sentry_sdk.capture_exception(error)
            return None

        logger.info("Recorded %s payment %s of %s for session %s", type.value, payment.id, amount, session_id)
        return payment
