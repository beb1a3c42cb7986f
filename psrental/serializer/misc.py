"""
Request Schemas
---------------

The bodies accepted by the session commands.
"""

from marshmallow import Schema, validates_schema, ValidationError, EXCLUDE
from marshmallow.fields import Integer, String, Bool, Nested, DateTime, Dict, List
from marshmallow.validate import Range, OneOf

from psrental.models.util import ActivityType, ChargeMethod, FundingSource
from .fields import EnumField


class CashierSchema(Schema):
    """Who took the money, when there is money to take."""
    shift_id = Integer(allow_none=True)
    user_id = Integer(allow_none=True)
    method = EnumField(ChargeMethod, load_default=ChargeMethod.CASH)


class SessionStartSchema(CashierSchema):
    duration = Integer(
        allow_none=True, validate=Range(min=1), load_default=None,
        metadata={"description": "The booked seconds. Leave out to pay at the end."}
    )
    member_id = Integer(allow_none=True, load_default=None)
    pin = String(allow_none=True, load_default=None)

    @validates_schema
    def assert_member_books_duration(self, data, **kwargs):
        if data.get("member_id") is not None and data.get("duration") is None:
            raise ValidationError("Member sessions must be booked for a duration.", "duration")
        if data.get("pin") is not None and data.get("member_id") is None:
            raise ValidationError("A PIN is only accepted with a member.", "pin")


class SessionCommandSchema(Schema):
    command = String(required=True, validate=OneOf(("stop", "resume")))


class AddTimeSchema(CashierSchema):
    minutes = Integer(required=True, validate=Range(min=1))
    use_deposit = Bool(load_default=False)


class EndSessionSchema(CashierSchema):
    extra_cost = Integer(load_default=0, validate=Range(min=0), metadata={"description": "Products owed."})


class DisconnectSchema(Schema):
    reason = String(allow_none=True, load_default=None)
    source = String(allow_none=True, load_default=None)


class OfflineParamsSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    description = String(allow_none=True)
    duration_added = Integer(allow_none=True, strict=True)
    cost_added = Integer(allow_none=True, strict=True)
    payment_method = EnumField(FundingSource, allow_none=True)
    device_status = String(allow_none=True)
    metadata = Dict(allow_none=True)


class OfflineActivitySchema(Schema):
    activity_type = EnumField(ActivityType, required=True)
    timestamp = DateTime(required=True)
    params = Nested(OfflineParamsSchema(), load_default=dict)


class OfflineSyncSchema(Schema):
    activities = List(Nested(OfflineActivitySchema()), required=True)
