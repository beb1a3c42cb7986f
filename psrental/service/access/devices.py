"""
Devices
-------
"""

from typing import List, Optional

from psrental.models import Device
from psrental.models.util import TimerStatus


async def get_devices(*, status: TimerStatus = None) -> List[Device]:
    """
    Gets all the devices in the shop.

    :param status: An optional timer status to filter by.
    """
    query = Device.all()

    if status is not None:
        query = query.filter(timer_status=status)

    return await query.order_by("id").prefetch_related("category")


async def get_device(device_id: str, using_db=None) -> Optional[Device]:
    query = Device.filter(id=device_id)
    if using_db is not None:
        query = query.using_db(using_db)
    return await query.first()


async def get_live_devices() -> List[Device]:
    """Gets the devices holding an open session."""
    return await Device.filter(timer_status__in=[status.value for status in TimerStatus.live_types()])
