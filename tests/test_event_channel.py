import asyncio
import json
import unittest

from companion.config import GatewayConfig
from companion.gateway.errors import AuthenticationError, ConfigurationError, DecodeError
from companion.gateway.event_channel import ChannelEvent, EventChannel
from tests.fakes import USABLE_CONFIG


async def settle(rounds: int = 10):
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeSocket:
    def __init__(self):
        self.incoming = asyncio.Queue()
        self.sent = []
        self.closed = False

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def close(self):
        self.closed = True
        self.incoming.put_nowait(None)

    def feed(self, frame):
        self.incoming.put_nowait(json.dumps(frame) if isinstance(frame, dict) else frame)

    def finish(self):
        self.incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeConnect:
    """Stands in for websockets.connect"""

    def __init__(self, socket=None, error=None):
        self.socket = socket
        self.error = error
        self.urls = []

    def __call__(self, url, **kwargs):
        self.urls.append(url)
        return self

    async def __aenter__(self):
        if self.error is not None:
            raise self.error
        return self.socket

    async def __aexit__(self, *exc_info):
        return False


class EventChannelTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.config = GatewayConfig(**USABLE_CONFIG)
        self.socket = FakeSocket()
        self.connect = FakeConnect(self.socket)
        self.notifications = []
        self.channel = EventChannel(lambda: self.config, self.notifications.append, connect=self.connect)

    async def asyncTearDown(self):
        await self.channel.close()

    def kinds(self):
        return [n.kind for n in self.notifications]

    async def test_open_sends_auth_frame(self):
        await self.channel.open()
        await settle()

        self.assertEqual(self.connect.urls, ["ws://localhost:3000/ws"])
        self.assertEqual(self.socket.sent, [{"type": "auth", "secret": "clawdbot-test-secret"}])
        self.assertEqual(self.kinds(), [ChannelEvent.OPENED])
        self.assertTrue(self.channel.is_open)

    async def test_events_flow_after_authentication(self):
        await self.channel.open()
        self.socket.feed({"type": "auth", "success": True})
        self.socket.feed({"type": "new_message", "content": "hi"})
        await settle()

        self.assertEqual(self.kinds(), [ChannelEvent.OPENED, ChannelEvent.AUTHENTICATED, ChannelEvent.EVENT])
        event = self.notifications[-1]
        self.assertEqual(event.event_kind, "new_message")
        self.assertEqual(event.payload["content"], "hi")
        self.assertTrue(self.channel.authenticated)

    async def test_frames_before_authentication_are_dropped(self):
        await self.channel.open()
        self.socket.feed({"type": "chat_response", "content": "early"})
        await settle()

        self.assertNotIn(ChannelEvent.EVENT, self.kinds())
        self.assertEqual(self.channel.get_stats()["frames_dropped"], 1)

    async def test_undecodable_frame_keeps_channel_open(self):
        await self.channel.open()
        self.socket.feed({"type": "auth", "success": True})
        self.socket.feed("{not json")
        self.socket.feed({"type": "status", "data": {"status": "ok"}})
        await settle()

        errors = [n.error for n in self.notifications if n.kind == ChannelEvent.ERRORED]
        self.assertIsInstance(errors[0], DecodeError)
        self.assertEqual(self.notifications[-1].event_kind, "status")
        self.assertTrue(self.channel.is_open)

    async def test_unknown_frames_are_ignored(self):
        await self.channel.open()
        self.socket.feed({"type": "auth", "success": True})
        self.socket.feed({"type": "heartbeat"})
        await settle()

        self.assertEqual(self.kinds(), [ChannelEvent.OPENED, ChannelEvent.AUTHENTICATED])

    async def test_rejected_secret_closes_with_authentication_error(self):
        await self.channel.open()
        self.socket.feed({"type": "auth", "success": False, "error": "bad secret"})
        await settle()

        self.assertEqual(self.kinds(), [ChannelEvent.OPENED, ChannelEvent.ERRORED, ChannelEvent.CLOSED])
        closed = self.notifications[-1]
        self.assertIsInstance(closed.error, AuthenticationError)
        self.assertFalse(closed.error.recoverable)
        self.assertTrue(self.socket.closed)

    async def test_server_close_emits_closed(self):
        await self.channel.open()
        self.socket.finish()
        await settle()

        self.assertEqual(self.kinds()[-1], ChannelEvent.CLOSED)
        self.assertIsNone(self.notifications[-1].error)
        self.assertFalse(self.channel.is_open)

    async def test_close_is_silent(self):
        await self.channel.open()
        self.socket.feed({"type": "auth", "success": True})
        await settle()

        await self.channel.close()
        await settle()

        self.assertNotIn(ChannelEvent.CLOSED, self.kinds())
        self.assertFalse(self.channel.is_open)
        self.assertFalse(self.channel.authenticated)

    async def test_connect_failure_is_recoverable(self):
        self.channel = EventChannel(lambda: self.config, self.notifications.append,
                                    connect=FakeConnect(error=ConnectionRefusedError("refused")))
        await self.channel.open()
        await settle()

        self.assertEqual(self.kinds(), [ChannelEvent.ERRORED, ChannelEvent.CLOSED])
        self.assertTrue(self.notifications[-1].error.recoverable)

    async def test_missing_event_url(self):
        self.config = GatewayConfig(**{**USABLE_CONFIG, "event_url": ""})
        await self.channel.open()
        await settle()

        self.assertEqual(self.kinds(), [ChannelEvent.ERRORED, ChannelEvent.CLOSED])
        self.assertIsInstance(self.notifications[-1].error, ConfigurationError)
        self.assertEqual(self.connect.urls, [])

    async def test_reopen_discards_old_socket_notifications(self):
        await self.channel.open()
        await settle()
        old_socket = self.socket

        self.socket = FakeSocket()
        self.connect.socket = self.socket
        await self.channel.open()
        old_socket.feed({"type": "auth", "success": True})
        await settle()

        self.assertEqual(self.kinds(), [ChannelEvent.OPENED, ChannelEvent.OPENED])
        self.assertEqual(self.channel.get_stats()["connections_opened"], 2)


if __name__ == "__main__":
    unittest.main()
