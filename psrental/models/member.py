from tortoise import Model, fields


class Member(Model):
    id = fields.IntField(pk=True)
    username = fields.CharField(max_length=64, unique=True)
    email = fields.CharField(max_length=128, unique=True)

    pin_hash = fields.CharField(max_length=128)
    """An argon2id hash of the member's PIN."""

    deposit = fields.IntField(default=0)
    """The wallet balance. Never negative."""

    def __str__(self):
        return f"{self.username} <{self.email}>"
