"""
Category
--------

A rate card. Every device belongs to one, and it sets the
price of a period of play on that device.
"""

from tortoise import Model, fields


class Category(Model):
    id = fields.IntField(pk=True)
    name = fields.CharField(max_length=64)

    cost_per_period = fields.IntField()
    """The price of one period (in the smallest currency unit)."""

    period_minutes = fields.IntField()
    """The length of one period."""

    def __str__(self):
        return f"{self.name} ({self.cost_per_period}/{self.period_minutes}min)"
