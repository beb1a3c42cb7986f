"""
Sessions
--------
"""

from typing import List, Optional, Union

from psrental.models import Device, Session, Member
from psrental.models.util import resolve_id


async def get_sessions(*, active: bool = None, member: Union[Member, int] = None) -> List[Session]:
    """
    Gets sessions, newest first.

    :param active: Only get the sessions that are (or are not) still open.
    :param member: Only get the sessions of a member.
    """
    query = Session.all()

    if active is not None:
        query = query.filter(end__isnull=active)
    if member is not None:
        query = query.filter(member_id=resolve_id(member))

    return await query.order_by("-start", "-id")


async def get_session(session_id: int) -> Optional[Session]:
    return await Session.filter(id=session_id).first().prefetch_related("activities")


async def get_active_session(device: Union[Device, str], using_db=None) -> Optional[Session]:
    """Gets the open session of a device, if there is one."""
    query = Session.filter(device_id=resolve_id(device), end__isnull=True)
    if using_db is not None:
        query = query.using_db(using_db)
    return await query.order_by("-start").first()


async def get_active_sessions() -> List[Session]:
    return await Session.filter(end__isnull=True)
