import tempfile
import unittest

from aiohttp import web
from aiohttp.test_utils import TestServer

from companion.gateway import discovery
from companion.storage import JsonConfigStore


class DiscoveryTests(unittest.IsolatedAsyncioTestCase):
    async def test_detects_running_gateway(self):
        async def status(request):
            return web.json_response({"version": "2.0.0", "uptime": 42})

        app = web.Application()
        app.router.add_get("/status", status)
        server = TestServer(app, host="localhost")
        await server.start_server()
        try:
            result = await discovery.detect_gateway(server.port)
            in_use = await discovery.is_port_in_use(server.port)
        finally:
            await server.close()

        self.assertEqual(result, {"running": True, "port": server.port, "version": "2.0.0", "uptime": 42})
        self.assertTrue(in_use)

    async def test_no_gateway(self):
        result = await discovery.detect_gateway(1, timeout=0.5)

        self.assertEqual(result, {"running": False, "port": 1})
        self.assertFalse(await discovery.is_port_in_use(1, "127.0.0.1", timeout=0.5))

    async def test_first_run_until_settings_saved(self):
        with tempfile.TemporaryDirectory() as directory:
            self.assertTrue(discovery.is_first_run(directory, "ns"))
            JsonConfigStore(directory, "ns").set("theme", "dark")
            self.assertFalse(discovery.is_first_run(directory, "ns"))

    async def test_default_urls(self):
        ports = discovery.get_available_ports()

        self.assertEqual(discovery.get_default_gateway_url(), f"http://localhost:{ports['gateway']}")
        self.assertTrue(discovery.get_default_api_url().endswith("/api"))


if __name__ == "__main__":
    unittest.main()
