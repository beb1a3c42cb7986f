class EventError(Exception):
    pass


class NoSuchEventError(EventError, AttributeError):
    """Raised when an event is not part of any of the hub's event lists."""


class NoSuchListenerError(EventError):
    """Raised when unsubscribing a handler that was never subscribed."""


class InvalidHandlerError(EventError):
    """Raised when a handler's signature does not match its event."""
