"""
Fields
-------

Additional fields so that the schemas can serialize
the enums used by the models to and from plain strings.
"""

from enum import Enum
from typing import Optional, Type, Union

from marshmallow import fields, ValidationError


class EnumField(fields.Field):
    """
    A field that serializes an :class:`~enum.Enum` to its value and back.
    """

    default_error_messages = {
        "invalid": "Must be one of: {choices}.",
    }

    def __init__(self, enum_type: Type[Enum], *args, **kwargs):
        super().__init__(*args, **kwargs)
        if not issubclass(enum_type, Enum):
            raise ValueError(f"Expected enum type, got {type(enum_type)} instead")
        self._enum_type = enum_type

    def _serialize(self, value: Union[Enum, str, None], attr, obj, **kwargs) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, self._enum_type):
            return value.value
        return self._enum_type(value).value

    def _deserialize(self, value: str, attr, data, **kwargs) -> Enum:
        try:
            return self._enum_type(value)
        except ValueError:
            raise self.make_error("invalid", choices=", ".join(enum.value for enum in self._enum_type))

    def _jsonschema_type_mapping(self):
        """Defines the jsonschema type for the object."""
        return {
            'type': 'string',
            'enum': [enum.value for enum in self._enum_type]
        }


def Many(schema):
    return fields.List(fields.Nested(schema))
