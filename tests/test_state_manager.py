import unittest

from companion.core.state_manager import ConnectionState, StateManager


class StateManagerTests(unittest.TestCase):
    def setUp(self):
        self.manager = StateManager(ConnectionState.DISCONNECTED)
        self.seen = []
        self.manager.add_listener(lambda old, new, reason: self.seen.append((old, new, reason)))

    def test_valid_transition_notifies(self):
        self.assertTrue(self.manager.transition_to(ConnectionState.CONNECTING, "Connect requested"))

        self.assertEqual(self.manager.get_state(), ConnectionState.CONNECTING)
        self.assertEqual(self.seen, [(ConnectionState.DISCONNECTED, ConnectionState.CONNECTING, "Connect requested")])

    def test_invalid_transition_is_rejected(self):
        self.assertFalse(self.manager.transition_to(ConnectionState.CONNECTED))

        self.assertEqual(self.manager.get_state(), ConnectionState.DISCONNECTED)
        self.assertEqual(self.seen, [])

    def test_unconfigured_reachable_from_everywhere(self):
        for state in ConnectionState:
            if state == ConnectionState.UNCONFIGURED:
                continue
            self.manager.current_state = state
            self.assertTrue(self.manager.can_transition(ConnectionState.UNCONFIGURED), state)

    def test_listener_errors_do_not_block_transition(self):
        def broken(old, new, reason):
            raise RuntimeError("boom")

        self.manager.add_listener(broken)
        self.assertTrue(self.manager.transition_to(ConnectionState.CONNECTING))
        self.assertEqual(len(self.seen), 1)

    def test_history_and_stats(self):
        self.manager.transition_to(ConnectionState.CONNECTING, "a")
        self.manager.transition_to(ConnectionState.CONNECTED, "b")
        self.manager.record_error("oops")

        history = self.manager.get_transition_history()
        self.assertEqual([h["to"] for h in history], ["connecting", "connected"])
        stats = self.manager.get_stats()
        self.assertEqual(stats["current_state"], "connected")
        self.assertEqual(stats["error_count"], 1)
        self.assertEqual(stats["last_error"], "oops")


if __name__ == "__main__":
    unittest.main()
