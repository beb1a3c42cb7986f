from datetime import datetime, timezone
from enum import Enum
from typing import Union, Optional

from tortoise import Model


class TimerStatus(str, Enum):
    """We subclass string to make json serialization work."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    ENDED = "ended"

    @staticmethod
    def live_types():
        """The statuses in which a device is holding an open session."""
        return TimerStatus.RUNNING, TimerStatus.PAUSED


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentType(str, Enum):
    """When the rental fee of a session is settled."""
    UPFRONT = "upfront"
    END = "end"


class ActivityType(str, Enum):
    START = "start"
    RESUME = "resume"
    STOP = "stop"
    ADD_TIME = "add_time"
    END = "end"
    DISCONNECT = "disconnect"

    @staticmethod
    def opening_types():
        """The activity types that start the clock."""
        return ActivityType.START, ActivityType.RESUME


class FundingSource(str, Enum):
    """How an add-time increment was paid for."""
    DEPOSIT = "deposit"
    CASH = "cash"
    DIRECT = "direct"


class ChargeType(str, Enum):
    RENTAL = "RENTAL"
    FNB = "FNB"
    PENALTY = "PENALTY"
    TOPUP = "TOPUP"
    OTHER = "OTHER"


class ChargeMethod(str, Enum):
    CASH = "CASH"
    QRIS = "QRIS"
    TRANSFER = "TRANSFER"
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


def resolve_id(target: Union[Model, int, str]):
    if isinstance(target, Model):
        return target.pk
    elif isinstance(target, (int, str)):
        return target
    else:
        raise TypeError(f"Target {target} is neither a Model, an int or a str.")


def as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Treats naive datetimes coming back from the database as UTC."""
    if moment is None or moment.tzinfo is not None:
        return moment
    return moment.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
