import unittest

from companion.core.state_manager import ConnectionState
from companion.events import EventBus, EventTypes, GatewayPush, StateChanged


class EventBusTests(unittest.TestCase):
    def setUp(self):
        self.bus = EventBus(max_history=10)

    def test_typed_and_catch_all_listeners(self):
        typed, everything = [], []
        self.bus.on(EventTypes.GATEWAY_PUSH, typed.append)
        self.bus.on_all(everything.append)

        self.bus.emit(GatewayPush("new_message", {"content": "hi"}))
        self.bus.emit(StateChanged(ConnectionState.DISCONNECTED, ConnectionState.CONNECTING))

        self.assertEqual(len(typed), 1)
        self.assertEqual(len(everything), 2)

    def test_reentrant_emit_preserves_order(self):
        order = []

        def first(event):
            order.append(("first", event.current))
            if event.current == ConnectionState.CONNECTING:
                self.bus.emit(StateChanged(ConnectionState.CONNECTING, ConnectionState.CONNECTED))

        def second(event):
            order.append(("second", event.current))

        self.bus.on_all(first)
        self.bus.on_all(second)
        self.bus.emit(StateChanged(ConnectionState.DISCONNECTED, ConnectionState.CONNECTING))

        self.assertEqual(order, [
            ("first", ConnectionState.CONNECTING),
            ("second", ConnectionState.CONNECTING),
            ("first", ConnectionState.CONNECTED),
            ("second", ConnectionState.CONNECTED),
        ])

    def test_listener_error_is_isolated(self):
        received = []

        def broken(event):
            raise ValueError("boom")

        self.bus.on_all(broken)
        self.bus.on_all(received.append)
        self.bus.emit(GatewayPush("chat_response", {}))

        self.assertEqual(len(received), 1)
        self.assertEqual(self.bus.get_stats()["listener_errors"], 1)

    def test_off_all(self):
        received = []
        self.bus.on_all(received.append)
        self.bus.on(EventTypes.GATEWAY_PUSH, received.append)

        self.bus.off_all(received.append)
        self.bus.emit(GatewayPush("chat_response", {}))

        self.assertEqual(received, [])

    def test_recent_events(self):
        self.bus.emit(GatewayPush("chat_response", {"content": "a"}))
        self.bus.emit(StateChanged(ConnectionState.DISCONNECTED, ConnectionState.CONNECTING))

        recent = self.bus.get_recent_events(event_type=EventTypes.GATEWAY_PUSH)

        self.assertEqual(len(recent), 1)
        self.assertEqual(recent[0]["payload"], {"content": "a"})


if __name__ == "__main__":
    unittest.main()
