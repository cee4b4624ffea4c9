import json
import os
import tempfile
import unittest

from companion.config import GatewayConfig, derive_api_url, derive_event_url, normalize_keys
from companion.storage import JsonConfigStore, MemoryConfigStore
from tests.fakes import USABLE_CONFIG


class GatewayConfigTests(unittest.TestCase):
    def setUp(self):
        self.config = GatewayConfig(**USABLE_CONFIG)

    def test_derived_urls(self):
        self.assertEqual(derive_api_url("http://gw.local:3000/"), "http://gw.local:3000/api")
        self.assertEqual(derive_event_url("http://gw.local:3000"), "ws://gw.local:3000/ws")
        self.assertEqual(derive_event_url("https://gw.example.com"), "wss://gw.example.com/ws")

    def test_normalize_keys(self):
        known, unknown = normalize_keys({"apiSecret": "s", "notifications": "false", "wsUrl": "ws://x/ws", "bogus": 1})

        self.assertEqual(known, {"api_secret": "s", "notifications_enabled": False, "event_url": "ws://x/ws"})
        self.assertEqual(unknown, {"bogus": 1})

    def test_usable(self):
        self.assertTrue(self.config.is_usable)
        self.assertFalse(self.config.merged({"apiSecret": ""}).is_usable)
        self.assertFalse(self.config.merged({"connectionMode": "unconfigured"}).is_usable)
        self.assertFalse(self.config.merged({"apiUrl": "not a url"}).is_usable)

    def test_local_mode_rederives_endpoints(self):
        updated = self.config.merged({"gatewayUrl": "https://gw.example.com"})

        self.assertEqual(updated.api_url, "https://gw.example.com/api")
        self.assertEqual(updated.event_url, "wss://gw.example.com/ws")

    def test_remote_mode_keeps_explicit_endpoints(self):
        remote = self.config.merged({"connectionMode": "remote", "apiUrl": "https://api.example.com"})
        updated = remote.merged({"gatewayUrl": "https://gw.example.com"})

        self.assertEqual(updated.api_url, "https://api.example.com")
        self.assertEqual(updated.event_url, self.config.event_url)

    def test_connection_changed(self):
        self.assertTrue(self.config.connection_changed(self.config.merged({"apiSecret": "other"})))
        self.assertFalse(self.config.connection_changed(self.config.merged({"theme": "light"})))

    def test_camel_case_dict(self):
        data = self.config.to_dict(camel_case=True)

        self.assertEqual(data["gatewayUrl"], "http://localhost:3000")
        self.assertEqual(data["notifications"], True)
        self.assertNotIn("gateway_url", data)

    def test_from_store(self):
        store = MemoryConfigStore({**USABLE_CONFIG, "theme": "light", "stray": "ignored"})

        config = GatewayConfig.from_store(store)

        self.assertEqual(config.theme, "light")
        self.assertEqual(config.api_secret, USABLE_CONFIG["api_secret"])

    def test_from_store_ignores_non_text_values(self):
        store = MemoryConfigStore({**USABLE_CONFIG, "api_secret": 12345, "theme": None})

        config = GatewayConfig.from_store(store)

        self.assertEqual(config.api_secret, GatewayConfig().api_secret)
        self.assertEqual(config.theme, GatewayConfig().theme)
        self.assertEqual(config.gateway_url, USABLE_CONFIG["gateway_url"])


class JsonConfigStoreTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.directory = self.tmp.name

    def tearDown(self):
        self.tmp.cleanup()

    def test_values_survive_reload(self):
        store = JsonConfigStore(self.directory, "test-ns")
        self.assertFalse(store.exists())

        store.update({"api_secret": "abc", "theme": "light"})

        reloaded = JsonConfigStore(self.directory, "test-ns")
        self.assertTrue(reloaded.exists())
        self.assertEqual(reloaded.get("api_secret"), "abc")
        self.assertTrue(reloaded.has("theme"))
        self.assertEqual(reloaded.get("missing", "default"), "default")

    def test_clear_removes_file(self):
        store = JsonConfigStore(self.directory, "test-ns")
        store.set("theme", "light")

        store.clear()

        self.assertFalse(store.exists())
        self.assertFalse(store.has("theme"))

    def test_unreadable_file_is_ignored(self):
        with open(os.path.join(self.directory, "test-ns.json"), "w", encoding="utf-8") as f:
            f.write("{broken")

        store = JsonConfigStore(self.directory, "test-ns")

        self.assertFalse(store.has("theme"))

    def test_file_is_a_json_object(self):
        store = JsonConfigStore(self.directory, "test-ns")
        store.set("auto_connect", True)

        with open(store.path, encoding="utf-8") as f:
            self.assertEqual(json.load(f), {"auto_connect": True})


if __name__ == "__main__":
    unittest.main()
