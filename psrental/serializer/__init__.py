"""
.. autoclasstree:: psrental.serializer

The serializer package houses all the schemas for the input/output in the system.
Request bodies are validated against these schemas before they reach the session
manager, and responses are dumped through them on the way out.
"""

from .fields import EnumField, Many
from .jsend import JSendSchema, JSendStatus
from .decorators import expects, returns
