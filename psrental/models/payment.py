from tortoise import Model, fields

from psrental.models.fields import EnumField
from psrental.models.util import ChargeType, ChargeMethod


class Payment(Model):
    """A completed charge recorded against a cashier's shift."""
    id = fields.IntField(pk=True)
    shift_id = fields.IntField(null=True)
    user_id = fields.IntField(null=True)
    session = fields.ForeignKeyField("models.Session", related_name="payments", null=True)
    amount = fields.IntField()
    type = EnumField(ChargeType, default=ChargeType.RENTAL)
    method = EnumField(ChargeMethod, default=ChargeMethod.CASH)
    note = fields.TextField(null=True)
    time = fields.DatetimeField(auto_now_add=True)
