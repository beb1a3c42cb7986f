import pytest

from psrental.events import EventHub, NoSuchEventError, NoSuchListenerError, InvalidHandlerError, EventList


class HandlerError(Exception):
    pass


class TimerEvents(EventList):

    @staticmethod
    def timer_expired(device_id):
        """A timer ran out."""


class RelayEvents(EventList):

    def relay_switched(self, device_id, on):
        """A relay was switched."""


class TestEventHub:

    @staticmethod
    def handler(device_id):
        pass

    @staticmethod
    def invalid_handler():
        pass

    async def test_event_list_in_hub(self):
        """Assert that you can check the existence of an event list on a hub."""
        hub = EventHub(TimerEvents)
        assert TimerEvents in hub
        assert RelayEvents not in hub

    async def test_event_in_hub(self):
        hub = EventHub(TimerEvents, RelayEvents)
        assert TimerEvents.timer_expired in hub
        assert RelayEvents.relay_switched in hub
        assert RelayEvents.relay_switched not in EventHub(TimerEvents)

    async def test_missing_event(self):
        """Assert that getting a non-existent event on an event list raises an error."""
        with pytest.raises(AttributeError):
            TimerEvents.bad_event

    async def test_event_on_hub(self):
        hub = EventHub(TimerEvents)
        assert hub.timer_expired.event == TimerEvents.timer_expired

    async def test_missing_event_on_hub(self):
        hub = EventHub()
        with pytest.raises(NoSuchEventError):
            hub.bad_event

    async def test_subscribe_to_missing_event(self):
        hub = EventHub(TimerEvents)
        with pytest.raises(NoSuchEventError):
            hub.subscribe(RelayEvents.relay_switched, lambda device_id, on: None)

    async def test_subscribe_checks_signature(self):
        """Assert that a subscriber must accept the arguments of the event."""
        hub = EventHub(TimerEvents, RelayEvents)
        with pytest.raises(InvalidHandlerError):
            hub.subscribe(TimerEvents.timer_expired, self.invalid_handler)
        with pytest.raises(InvalidHandlerError):
            hub.subscribe(RelayEvents.relay_switched, self.handler)

    async def test_subscribe_with_varargs(self):
        hub = EventHub(RelayEvents)
        hub.subscribe(RelayEvents.relay_switched, lambda *args: None)

    async def test_unsubscribe(self):
        hub = EventHub(TimerEvents)
        hub.subscribe(hub.timer_expired, self.handler)
        hub.unsubscribe(hub.timer_expired, self.handler)
        assert sum((len(l) for l in hub._listeners.values()), 0) == 0

    async def test_bad_unsubscribe(self):
        hub = EventHub()
        with pytest.raises(NoSuchListenerError):
            hub.unsubscribe(TimerEvents.timer_expired, self.handler)

    async def test_emit_in_order(self):
        """Assert that handlers are called in the order they subscribed."""
        hub = EventHub(RelayEvents)
        calls = []
        hub.subscribe(RelayEvents.relay_switched, lambda device_id, on: calls.append(("first", device_id, on)))
        hub.subscribe(RelayEvents.relay_switched, lambda device_id, on: calls.append(("second", device_id, on)))
        hub.emit(RelayEvents.relay_switched, "ps-01", True)
        assert calls == [("first", "ps-01", True), ("second", "ps-01", True)]

    async def test_handler_errors_propagate(self):
        hub = EventHub(TimerEvents)

        def raise_listener(device_id):
            raise HandlerError("This runs!")

        hub.subscribe(TimerEvents.timer_expired, raise_listener)
        with pytest.raises(HandlerError):
            hub.emit(TimerEvents.timer_expired, device_id="ps-01")

    async def test_natural_syntax(self):
        """Assert that events can be subscribed to and triggered as attributes of the hub."""
        hub = EventHub(TimerEvents)
        expired = []

        hub.timer_expired += expired.append
        hub.timer_expired("ps-01")
        hub.timer_expired -= expired.append
        hub.timer_expired("ps-02")

        assert expired == ["ps-01"]


class TestEventList:

    def test_events(self):
        """Assert that an event list knows its declared events, static or not."""
        assert set(TimerEvents.events()) == {"timer_expired"}
        assert RelayEvents.events()["relay_switched"] is RelayEvents.relay_switched

    def test_lookalike_is_not_contained(self):
        def timer_expired(device_id):
            pass

        assert timer_expired not in TimerEvents
        assert TimerEvents.timer_expired in TimerEvents
