"""
Event Hub
---------

Routes emitted events to the handlers subscribed to them.
Handlers are called synchronously, in the order they subscribed.
"""

from collections import defaultdict
from inspect import signature, Parameter
from typing import Callable, Dict, List, Type, Union

from .event_list import EventList
from .exceptions import NoSuchEventError, NoSuchListenerError, InvalidHandlerError


class BoundEvent:
    """An event accessed through a hub, allowing ``hub.event += handler`` and ``hub.event(*args)``."""

    def __init__(self, hub: "EventHub", event: Callable):
        self.hub = hub
        self.event = event

    def __iadd__(self, handler: Callable):
        self.hub.subscribe(self.event, handler)
        return self

    def __isub__(self, handler: Callable):
        self.hub.unsubscribe(self.event, handler)
        return self

    def __call__(self, *args, **kwargs):
        self.hub.emit(self.event, *args, **kwargs)


class EventHub:

    def __init__(self, *event_lists: Type[EventList]):
        self._event_lists: List[Type[EventList]] = []
        self._listeners: Dict[Callable, List[Callable]] = defaultdict(list)
        self.add_events(*event_lists)

    def add_events(self, *event_lists: Type[EventList]):
        for event_list in event_lists:
            if event_list not in self._event_lists:
                self._event_lists.append(event_list)

    def subscribe(self, event: Union[Callable, BoundEvent], handler: Callable):
        """
        Subscribes a handler to an event.

        :raises NoSuchEventError: If the event is not emitted by this hub.
        :raises InvalidHandlerError: If the handler can not accept the event's arguments.
        """
        event = self._resolve(event)
        if not _is_compatible(event, handler):
            raise InvalidHandlerError(f"{handler} does not match the signature of {event.__name__}.")
        self._listeners[event].append(handler)

    def unsubscribe(self, event: Union[Callable, BoundEvent], handler: Callable):
        """
        :raises NoSuchListenerError: If the handler is not subscribed to the event.
        """
        event = event.event if isinstance(event, BoundEvent) else event
        try:
            self._listeners[event].remove(handler)
        except ValueError:
            raise NoSuchListenerError(f"{handler} is not subscribed to {event.__name__}.")

    def emit(self, event: Union[Callable, BoundEvent], *args, **kwargs):
        """Calls every handler subscribed to the event."""
        event = self._resolve(event)
        for handler in list(self._listeners[event]):
            handler(*args, **kwargs)

    def _resolve(self, event: Union[Callable, BoundEvent]) -> Callable:
        if isinstance(event, BoundEvent):
            event = event.event
        if event not in self:
            raise NoSuchEventError(f"{getattr(event, '__name__', event)} is not emitted by this hub.")
        return event

    def __contains__(self, item) -> bool:
        if isinstance(item, type) and issubclass(item, EventList):
            return item in self._event_lists
        return any(item in event_list for event_list in self._event_lists)

    def __getattr__(self, name: str) -> BoundEvent:
        if name.startswith("_"):
            raise AttributeError(name)
        for event_list in self.__dict__.get("_event_lists", []):
            event = event_list.events().get(name)
            if event is not None:
                return BoundEvent(self, event)
        raise NoSuchEventError(f"No event named {name} on this hub.")

    def __setattr__(self, name, value):
        # ``hub.event += handler`` assigns the bound event back onto the hub
        if isinstance(value, BoundEvent) and value.hub is self:
            return
        super().__setattr__(name, value)


def _is_compatible(event: Callable, handler: Callable) -> bool:
    """A handler is compatible when it can be called with the event's positional arguments."""
    event_params = [p for p in signature(event).parameters.values() if p.name != "self"]
    try:
        handler_params = list(signature(handler).parameters.values())
    except (TypeError, ValueError):
        return True

    if any(p.kind is Parameter.VAR_POSITIONAL for p in handler_params):
        return True

    positional = [p for p in handler_params if p.kind in (Parameter.POSITIONAL_ONLY, Parameter.POSITIONAL_OR_KEYWORD)]
    required = [p for p in positional if p.default is Parameter.empty]
    return len(required) <= len(event_params) <= len(positional)
