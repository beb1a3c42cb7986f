"""
Session
---------------------------

A session is one billable rental of a device. Its activities form an
append-only ledger which is the source of truth for how long the device
was actually used.
"""

from datetime import datetime
from typing import Optional, Dict, Any

from tortoise import Model, fields

from psrental.models.fields import EnumField
from psrental.models.util import SessionStatus, PaymentType, ActivityType, FundingSource


class SessionActivity(Model):
    id = fields.IntField(pk=True)
    session = fields.ForeignKeyField("models.Session", related_name="activities")
    activity_type = EnumField(ActivityType)
    timestamp: datetime = fields.DatetimeField()
    description = fields.TextField(null=True)

    duration_added = fields.IntField(null=True)
    cost_added = fields.IntField(null=True)
    payment_method = EnumField(FundingSource, null=True)
    previous_balance = fields.IntField(null=True)
    new_balance = fields.IntField(null=True)
    device_status = fields.CharField(max_length=32, null=True)
    metadata = fields.JSONField(null=True)

    def serialize(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "activity_type": self.activity_type,
            "timestamp": self.timestamp,
            "description": self.description,
            "duration_added": self.duration_added,
            "cost_added": self.cost_added,
            "payment_method": self.payment_method,
            "previous_balance": self.previous_balance,
            "new_balance": self.new_balance,
            "device_status": self.device_status,
            "metadata": self.metadata,
        }

    class Meta:
        ordering = ["timestamp", "id"]


class Session(Model):
    id = fields.IntField(pk=True)
    device = fields.ForeignKeyField("models.Device", related_name="sessions")
    member = fields.ForeignKeyField("models.Member", related_name="sessions", null=True)

    start: datetime = fields.DatetimeField()
    end: Optional[datetime] = fields.DatetimeField(null=True)

    duration = fields.IntField(null=True)
    """The billed duration in seconds while active, the used duration once complete."""

    cost = fields.IntField(null=True)
    """The price of the session. ``None`` until a pay-at-end session is complete."""

    payment_type = EnumField(PaymentType, default=PaymentType.UPFRONT)
    status = EnumField(SessionStatus, default=SessionStatus.ACTIVE)
    is_member_transaction = fields.BooleanField(default=False)

    @property
    def is_active(self) -> bool:
        return self.end is None

    @property
    def is_unlimited(self) -> bool:
        return self.payment_type is PaymentType.END

    def __str__(self):
        return f"Session {self.id} on {self.device_id} ({self.status.value})"

    def serialize(self, router=None) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "device_id": self.device_id,
            "member_id": self.member_id,
            "start": self.start,
            "end": self.end,
            "duration": self.duration,
            "cost": self.cost,
            "payment_type": self.payment_type,
            "status": self.status,
            "is_member_transaction": self.is_member_transaction,
            "is_active": self.is_active,
        }

        if router is not None:
            data["url"] = router["session"].url_for(id=str(self.id)).path
            data["device_url"] = router["device"].url_for(id=self.device_id).path

        return data
