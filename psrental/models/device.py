"""
Device
-------------------------

Represents a rentable console on the server. Besides its rate category, a
device carries the volatile timer state of the session currently running on
it. The timer fields are a cache for cheap reads; the activity ledger of the
session is what billing is computed from.

``timer_start`` is only set while the timer is running, and ``timer_duration``
always holds the seconds *remaining* relative to ``timer_start`` (or the
seconds left when it was paused). It is ``None`` for unlimited sessions.
"""

from typing import Dict, Any

from tortoise import Model, fields

from psrental.models.fields import EnumField
from psrental.models.util import TimerStatus


class Device(Model):
    id = fields.CharField(max_length=64, pk=True)
    name = fields.CharField(max_length=64)
    category = fields.ForeignKeyField("models.Category", related_name="devices")

    relay_number = fields.IntField(null=True)
    """The relay channel the device's power is wired to."""

    timer_status = EnumField(TimerStatus, default=TimerStatus.IDLE)
    timer_start = fields.DatetimeField(null=True)
    timer_duration = fields.IntField(null=True)
    timer_elapsed = fields.IntField(default=0)
    last_paused_at = fields.DatetimeField(null=True)

    @property
    def is_live(self) -> bool:
        return self.timer_status in TimerStatus.live_types()

    @property
    def is_unlimited(self) -> bool:
        return self.timer_duration is None

    def reset_timer(self, status: TimerStatus = TimerStatus.ENDED):
        """Clears every timer field."""
        self.timer_status = status
        self.timer_start = None
        self.timer_duration = None
        self.timer_elapsed = 0
        self.last_paused_at = None

    def __str__(self):
        return f"[{self.timer_status.value}] {self.name} ({self.id})"

    def serialize(self, session_manager, router=None) -> Dict[str, Any]:
        timer = session_manager.timer_state(self)
        data = {
            "id": self.id,
            "name": self.name,
            "category_id": self.category_id,
            "relay_number": self.relay_number,
            "timer_status": self.timer_status,
            "timer_start": self.timer_start,
            "remaining": timer.remaining,
            "elapsed": timer.elapsed,
            "last_paused_at": self.last_paused_at,
        }

        if router is not None:
            data["url"] = router["device"].url_for(id=self.id).path

        return data
