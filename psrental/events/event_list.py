"""
Event Lists
-----------

An event list declares events as plain functions on a subclass. The
functions are never called: their signatures are the contract that the
handlers subscribed to them must satisfy.
"""

from inspect import isfunction
from typing import Callable, Dict


class EventListMeta(type):

    def __contains__(cls, event: Callable) -> bool:
        """Checks that the event is declared on this list, and not just named like one of its events."""
        event_name = getattr(event, "__name__", None)
        return event_name is not None and cls.events().get(event_name) is event

    def events(cls) -> Dict[str, Callable]:
        """Gets the events declared on the list (and its bases), by name."""
        declared = {}
        for klass in reversed(cls.__mro__):
            for name, value in vars(klass).items():
                if name.startswith("_"):
                    continue
                if isinstance(value, staticmethod):
                    value = value.__func__
                if isfunction(value):
                    declared[name] = value
        return declared


class EventList(metaclass=EventListMeta):
    """
    The base for a list of emittable events.

    >>> class TimerEvents(EventList):
    >>>     def timer_expired(self, device_id: str):
    >>>         "A timer ran out."
    """
