"""
JSend Schema
------------

Every response of the API is wrapped in a `JSend`_ envelope.

.. _`JSend`: https://github.com/omniti-labs/jsend
"""

from enum import Enum

from marshmallow import Schema, fields, validates_schema, ValidationError
from marshmallow.fields import Field

from .fields import EnumField


class JSendStatus(str, Enum):

    SUCCESS = "success"
    """The command went through."""

    FAIL = "fail"
    """The request was rejected (a missing device, a conflicting timer, too small a deposit...)."""

    ERROR = "error"
    """The server failed to handle the request."""


class JSendSchema(Schema):
    status = EnumField(JSendStatus, required=True)
    data = fields.Dict()
    message = fields.String()
    code = fields.Integer()

    @validates_schema
    def assert_fields(self, data, **kwargs):
        """
        Asserts that a success or failure carries ``data``, that a failure
        explains itself with a message, and that an error has a ``message``.
        """
        if data["status"] in (JSendStatus.SUCCESS, JSendStatus.FAIL) and "data" not in data:
            raise ValidationError(f"When status is {data['status'].value}, the data field must be populated.")
        if data["status"] == JSendStatus.FAIL and "message" not in data["data"]:
            raise ValidationError("All failures must return a user-friendly error message.")
        if data["status"] == JSendStatus.ERROR and "message" not in data:
            raise ValidationError("When the status is error, the message field must be populated.")

    @staticmethod
    def of(**kwargs):
        """
        Creates a JSendSchema whose ``data`` has the given fields.

        >>> schema = JSendSchema.of(device=DeviceSchema())
        >>> body = schema.load(await response.json())
        """

        DataSchema = type('DataSchema', (Schema,), {
            field_name: fields.Nested(schema) if not isinstance(schema, Field) else schema
            for field_name, schema in kwargs.items()
        })

        class TypedJSendSchema(JSendSchema):
            data = fields.Nested(DataSchema)

        return TypedJSendSchema()
