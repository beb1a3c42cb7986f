"""
.. autoclasstree:: psrental.events

This module provides a simple event system. It is centered around the use of hubs.
A hub is created by passing a number of event lists in. These event lists provide
typed callback signatures which subscribers can use to implement their handlers.

>>> class TimerEvents(EventList):
>>>     @staticmethod
>>>     def expired(device_id: str):
>>>         "A timer ran out."
>>>
>>> def expiry_handler(device_id):
>>>     print(f"Timer expired on {device_id}")
>>>
>>> hub = EventHub(TimerEvents)
>>> hub.subscribe(TimerEvents.expired, expiry_handler)
>>> hub.emit(TimerEvents.expired, "ps5-01")
Timer expired on ps5-01
"""

from .event_hub import EventHub, BoundEvent
from .event_list import EventList
from .exceptions import NoSuchEventError, NoSuchListenerError, InvalidHandlerError
