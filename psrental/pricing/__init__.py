"""
The pricing module determines the price of a stretch of play on a device.

A rate card (a :class:`~psrental.models.Category`) prices one period of
``period_minutes`` at ``cost_per_period``. Usage is billed pro rata to the
second and rounded to the nearest unit. Every price in the system goes
through :func:`get_price`: upfront prices, pay-at-end prices, add-time
increments and refunds alike.
"""

import math
from numbers import Real

from psrental.errors import InvalidInputError


def get_price(usage_seconds: int, category) -> int:
    """
    Prices the given usage on the given rate card.

    :param usage_seconds: The seconds of play to price.
    :param category: Anything with ``cost_per_period`` and ``period_minutes``.
    :return: The price, never negative.
    :raises InvalidInputError: If the usage is negative or the rate card is malformed.
    """
    cost_per_period = getattr(category, "cost_per_period", None)
    period_minutes = getattr(category, "period_minutes", None)

    if not _is_number(cost_per_period) or not _is_number(period_minutes) or period_minutes <= 0:
        raise InvalidInputError("Invalid category data for cost calculation.", {
            "cost_per_period": cost_per_period,
            "period_minutes": period_minutes,
        })

    if not _is_number(usage_seconds) or usage_seconds < 0:
        raise InvalidInputError("Usage must be a non-negative number of seconds.", {"usage_seconds": usage_seconds})

    # halves round up, never to the nearest even number
    price = math.floor(cost_per_period * usage_seconds / (period_minutes * 60) + 0.5)
    return max(0, int(price))


def _is_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)
