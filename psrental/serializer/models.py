"""
Model Serializers
-----------------

Defines serializers for the models in the system and the
read models built from them (timer state, receipts, summaries).
"""

from marshmallow import Schema
from marshmallow.fields import Integer, Boolean, String, Nested, DateTime, Dict, Url, List

from psrental.models.util import TimerStatus, SessionStatus, PaymentType, ActivityType, FundingSource
from .fields import EnumField, Many


class DeviceSchema(Schema):
    """The schema corresponding to the :class:`~psrental.models.device.Device` model."""

    id = String(required=True)
    url = Url(relative=True)
    name = String(required=True)
    category_id = Integer()
    relay_number = Integer(allow_none=True)

    timer_status = EnumField(TimerStatus, required=True)
    timer_start = DateTime(allow_none=True)
    remaining = Integer(allow_none=True, metadata={"description": "Seconds left, or null when unlimited."})
    elapsed = Integer(metadata={"description": "Seconds since the timer was last started."})
    last_paused_at = DateTime(allow_none=True)


class ActivitySchema(Schema):
    id = Integer()
    session_id = Integer()
    activity_type = EnumField(ActivityType, required=True)
    timestamp = DateTime(required=True)
    description = String(allow_none=True)

    duration_added = Integer(allow_none=True)
    cost_added = Integer(allow_none=True)
    payment_method = EnumField(FundingSource, allow_none=True)
    previous_balance = Integer(allow_none=True)
    new_balance = Integer(allow_none=True)
    device_status = String(allow_none=True)
    metadata = Dict(allow_none=True)


class SessionSchema(Schema):
    """The schema corresponding to the :class:`~psrental.models.session.Session` model."""

    id = Integer(required=True)
    url = Url(relative=True)

    device_id = String(required=True)
    device_url = Url(relative=True)
    member_id = Integer(allow_none=True)

    start = DateTime(required=True)
    end = DateTime(allow_none=True)
    duration = Integer(allow_none=True)
    cost = Integer(allow_none=True)

    payment_type = EnumField(PaymentType, required=True)
    status = EnumField(SessionStatus, required=True)
    is_member_transaction = Boolean()
    is_active = Boolean(required=True)

    activities = Many(ActivitySchema())


class ReceiptSchema(Schema):
    session = Nested(SessionSchema(), required=True)
    usage = Integer(required=True)
    refund = Integer(required=True)
    amount_due = Integer(required=True)


class TimeAdditionSchema(Schema):
    timestamp = DateTime()
    duration_added = Integer(allow_none=True)
    cost_added = Integer(allow_none=True)
    payment_method = EnumField(FundingSource, allow_none=True)
    previous_balance = Integer(allow_none=True)
    new_balance = Integer(allow_none=True)


class SummarySchema(Schema):
    total_activities = Integer()
    time_additions = Many(TimeAdditionSchema())
    stop_resume_count = Integer()
    total_added_duration = Integer()
    total_added_cost = Integer()
    payment_methods = Dict(keys=String(), values=Integer())
    timeline = List(Nested(ActivitySchema(only=("timestamp", "activity_type", "description"))))


class SyncResultSchema(Schema):
    success = Boolean(required=True)
    activity_type = EnumField(ActivityType)
    activity_id = Integer()
    error = String()
