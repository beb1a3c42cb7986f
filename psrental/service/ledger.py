"""
Activity Ledger
---------------

Every session keeps an append-only log of what happened to it. The log is
the authority on how long a device was actually played: the timer fields on
the device are a snapshot that goes stale whenever the client is offline,
but folding over the ledger gives the same answer no matter how many
disconnects happened in between.

Responsibilities
================

- append activities (stamped by the server clock, or replayed from an offline client)
- read a session's activities in order
- reconstruct the seconds of play from the activities
- summarise the activities for receipts
"""

from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Iterable, Optional, List, Dict, Any, Union

import sentry_sdk
from tortoise.exceptions import BaseORMException

from psrental import logger
from psrental.errors import ConflictError, InvalidInputError, LoggingFailure
from psrental.models import Session, SessionActivity
from psrental.models.util import ActivityType, FundingSource, as_utc, resolve_id, utcnow

SYNCABLE_TYPES = (ActivityType.STOP, ActivityType.RESUME, ActivityType.ADD_TIME, ActivityType.DISCONNECT)
"""The activities an offline client may replay. Starting and ending always go through the server."""


def compute_usage_seconds(events: Iterable, session_start: Optional[datetime], session_end: Optional[datetime]) -> int:
    """
    Folds a session's activities into the seconds the device was in use.

    The clock opens on ``start`` or ``resume`` and closes on ``stop`` or ``end``
    (an ``end`` closes at ``session_end`` when it is known). A clock still open
    after the last activity runs until ``session_end``. Repeated opens or closes
    are ignored, so missed pairs during a disconnect never double count.

    :param events: Anything with an ``activity_type`` and a ``timestamp``.
    :param session_start: Time before this is never counted.
    :param session_end: When the session ended, or ``None`` if it is still open.
    :return: The seconds of use, never negative.
    """
    session_start = as_utc(session_start)
    session_end = as_utc(session_end)

    total = 0
    active_since = None

    for event in sorted(events, key=lambda e: as_utc(e.timestamp)):
        timestamp = as_utc(event.timestamp)
        activity_type = ActivityType(event.activity_type)

        if activity_type in ActivityType.opening_types():
            if active_since is None:
                active_since = timestamp if session_start is None else max(timestamp, session_start)
        elif activity_type is ActivityType.STOP:
            if active_since is not None:
                total += _seconds_between(active_since, timestamp)
                active_since = None
        elif activity_type is ActivityType.END:
            if active_since is not None:
                total += _seconds_between(active_since, session_end if session_end is not None else timestamp)
                active_since = None

    if active_since is not None and session_end is not None:
        total += _seconds_between(active_since, session_end)

    return total


def _seconds_between(since: datetime, until: datetime) -> int:
    return max(0, int((until - since).total_seconds()))


@asynccontextmanager
async def savepoint(connection, name: str = "session_activity"):
    """
    Runs the block in a savepoint of the given transaction, rolling back to it if
    the block raises. PostgreSQL refuses every statement after a failed one until
    the transaction is rolled back, so this keeps the enclosing transaction usable.

    Without a connection, the block runs as is.
    """
    if connection is None:
        yield
        return

    await connection.execute_query(f"SAVEPOINT {name}")
    try:
        yield
    except Exception:
        await connection.execute_query(f"ROLLBACK TO SAVEPOINT {name}")
        raise
    await connection.execute_query(f"RELEASE SAVEPOINT {name}")


class ActivityLedger:
    """
    Appends to and reads from the session activity log.

    A failed append is logged, counted and reported to sentry as a
    :class:`~psrental.errors.LoggingFailure`, but never raised, so the
    transition that produced it still goes through. An append made inside a
    transaction runs in a savepoint, and a failure only rolls back to it.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self.failures = 0
        """The number of appends that could not be written."""

    async def append(
        self, session: Union[Session, int], activity_type: ActivityType, *,
        description: str = None, timestamp: datetime = None,
        duration_added: int = None, cost_added: int = None, payment_method: FundingSource = None,
        previous_balance: int = None, new_balance: int = None,
        device_status: str = None, metadata: Dict[str, Any] = None, using_db=None
    ) -> Optional[SessionActivity]:
        """
        Appends an activity to the session's ledger.

        :return: The new activity, or ``None`` if it could not be written.
        """
        session_id = resolve_id(session)
        try:
            async with savepoint(using_db):
                activity = await SessionActivity.create(
                    session_id=session_id,
                    activity_type=activity_type,
                    timestamp=timestamp if timestamp is not None else self._clock(),
                    description=description,
                    duration_added=duration_added,
                    cost_added=cost_added,
                    payment_method=payment_method,
                    previous_balance=previous_balance,
                    new_balance=new_balance,
                    device_status=device_status,
                    metadata=metadata,
                    using_db=using_db,
                )
        except BaseORMException as error:
            self.failures += 1
            failure = LoggingFailure(
                f"Could not log {activity_type.value} for session {session_id}.",
                {"session_id": session_id, "activity_type": activity_type.value}
            )
            failure.__cause__ = error
            logger.exception(failure.message)
            sentry_sdk.capture_exception(failure)
            return None

        logger.debug("Logged %s for session %s", activity_type.value, session_id)
        return activity

    @staticmethod
    async def read_all(session: Union[Session, int], using_db=None) -> List[SessionActivity]:
        """Gets every activity of a session, oldest first."""
        query = SessionActivity.filter(session_id=resolve_id(session)).order_by("timestamp", "id")
        if using_db is not None:
            query = query.using_db(using_db)
        return await query

    async def usage_seconds(self, session: Session, end: datetime = None, using_db=None) -> int:
        """Reconstructs the seconds of play of a session up to ``end`` (or its recorded end)."""
        activities = await self.read_all(session, using_db=using_db)
        return compute_usage_seconds(activities, session.start, end if end is not None else session.end)

    async def sync_offline(self, session: Session, activities: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Replays activities an offline client performed, keeping their original timestamps.

        Each item is a dict with an ``activity_type``, a ``timestamp``, and optional ``params``.
        Items are appended oldest first, and each succeeds or fails on its own.

        :raises ConflictError: If the session is no longer active.
        """
        if not session.is_active:
            raise ConflictError("Can not sync activities into a session that has ended.", {"session_id": session.id})

        logger.info("Syncing %s offline activities for session %s", len(activities), session.id)
        results = []

        for item in sorted(activities, key=lambda a: as_utc(a["timestamp"])):
            try:
                activity_type = parse_activity_type(item["activity_type"])
            except InvalidInputError as error:
                results.append({"success": False, "error": error.message})
                continue

            if activity_type not in SYNCABLE_TYPES:
                results.append({
                    "success": False,
                    "activity_type": activity_type,
                    "error": f"{activity_type.value} can not be synced from a client."
                })
                continue

            try:
                params = parse_offline_params(item.get("params") or {})
                metadata = dict(params.get("metadata") or {})
                metadata.update({
                    "synced_from_offline": True,
                    "original_timestamp": as_utc(item["timestamp"]).isoformat(),
                    "synced_at": self._clock().isoformat(),
                })

                activity = await self.append(
                    session, activity_type,
                    timestamp=as_utc(item["timestamp"]),
                    description=params.get("description") or f"Offline {activity_type.value}",
                    duration_added=params.get("duration_added"),
                    cost_added=params.get("cost_added"),
                    payment_method=params.get("payment_method"),
                    device_status=params.get("device_status"),
                    metadata=metadata,
                )
            except (ValueError, TypeError) as error:
                logger.warning("Rejected offline %s for session %s: %s", activity_type.value, session.id, error)
                results.append({"success": False, "activity_type": activity_type, "error": str(error)})
                continue

            if activity is None:
                results.append({"success": False, "activity_type": activity_type, "error": "Could not be written."})
            else:
                results.append({"success": True, "activity_type": activity_type, "activity_id": activity.id})

        succeeded = sum(1 for result in results if result["success"])
        logger.info("Synced %s/%s offline activities for session %s", succeeded, len(activities), session.id)
        return results

    async def summarize(self, session: Union[Session, int]) -> Dict[str, Any]:
        """Summarises the activities of a session for a receipt."""
        activities = await self.read_all(session)

        summary = {
            "total_activities": len(activities),
            "time_additions": [],
            "stop_resume_count": 0,
            "total_added_duration": 0,
            "total_added_cost": 0,
            "payment_methods": defaultdict(int),
            "timeline": [],
        }

        for activity in activities:
            summary["timeline"].append({
                "timestamp": activity.timestamp,
                "activity_type": activity.activity_type,
                "description": activity.description,
            })

            if activity.activity_type is ActivityType.ADD_TIME:
                summary["time_additions"].append({
                    "timestamp": activity.timestamp,
                    "duration_added": activity.duration_added,
                    "cost_added": activity.cost_added,
                    "payment_method": activity.payment_method,
                    "previous_balance": activity.previous_balance,
                    "new_balance": activity.new_balance,
                })
                summary["total_added_duration"] += activity.duration_added or 0
                summary["total_added_cost"] += activity.cost_added or 0
                method = activity.payment_method.value if activity.payment_method is not None else "unknown"
                summary["payment_methods"][method] += 1
            elif activity.activity_type in (ActivityType.STOP, ActivityType.RESUME):
                summary["stop_resume_count"] += 1

        summary["payment_methods"] = dict(summary["payment_methods"])
        return summary


def parse_offline_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Checks the types of the parameters of an offline activity.

    :raises ValueError: If the payment method is not a funding source.
    :raises TypeError: If an amount is not a whole number.
    """
    for name in ("duration_added", "cost_added"):
        value = params.get(name)
        if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
            raise TypeError(f"{name} must be a whole number, not {value!r}.")

    payment_method = params.get("payment_method")
    if payment_method is not None:
        payment_method = FundingSource(payment_method)

    return {**params, "payment_method": payment_method}


def parse_activity_type(value) -> ActivityType:
    """
    :raises InvalidInputError: If the value is not an activity type.
    """
    try:
        return ActivityType(value)
    except ValueError:
        raise InvalidInputError(f"Unknown activity type {value}.", {"activity_type": value})
