from __future__ import annotations

import re
import unittest

from xypai_auth.config import ClientConfig
from xypai_auth.domain import AuthError, ErrorKind, PasswordCredentials, RetryPolicy, SessionState
from xypai_auth.event_bus import EventBus
from xypai_auth.persistence import InMemorySessionPersistence
from xypai_auth.shell_entry import build_session_store, generate_device_id

from tests.stubs import StubTransport, http_error, login_data, ok


class DeviceIdTests(unittest.TestCase):
    def test_format(self):
        device_id = generate_device_id()
        self.assertRegex(device_id, r"^device_\d{13}_[a-z0-9]{9}$")

    def test_unique(self):
        self.assertNotEqual(generate_device_id(), generate_device_id())


class BuildSessionStoreTests(unittest.IsolatedAsyncioTestCase):
    async def test_wires_config_into_store(self) -> None:
        transport = StubTransport(ok(login_data()))
        config = ClientConfig(device_id="device_1_fixed", refresh_ahead=60)
        store = build_session_store(config, transport=transport, persistence=InMemorySessionPersistence())

        self.assertEqual(store.device_id, "device_1_fixed")
        self.assertEqual(store.refresh_ahead.total_seconds(), 60)
        self.assertEqual(await store.initialize(), SessionState.ANONYMOUS)

        await store.login(PasswordCredentials(phone="13800138000", password="secret1"))
        self.assertEqual(transport.calls[0]["headers"]["X-Device-Id"], "device_1_fixed")

    async def test_generates_device_id_when_missing(self) -> None:
        config = ClientConfig()
        store = build_session_store(config, transport=StubTransport(), persistence=InMemorySessionPersistence())
        self.assertTrue(re.match(r"^device_\d+_", store.device_id))
        self.assertEqual(config.device_id, store.device_id)

    async def test_uses_configured_retry_policy(self) -> None:
        transport = StubTransport(default=http_error(500))
        config = ClientConfig(retry=RetryPolicy(max_retries=1, base_delay_ms=0), device_id="d")
        store = build_session_store(config, transport=transport, persistence=InMemorySessionPersistence())

        with self.assertRaises(AuthError) as ctx:
            await store.login(PasswordCredentials(phone="13800138000", password="secret1"))

        self.assertEqual(ctx.exception.kind, ErrorKind.SERVER_ERROR)
        self.assertEqual(len(transport.calls), 2)


class EventBusTests(unittest.TestCase):
    def test_handler_failure_does_not_stop_others(self):
        bus = EventBus()
        seen = []

        def broken(payload):
            raise RuntimeError("boom")

        bus.on("sessionStatus", broken)
        bus.on("sessionStatus", seen.append)
        with self.assertLogs("xypai_auth.event_bus", level="ERROR"):
            bus.emit("sessionStatus", {"status": "none"})
        self.assertEqual(seen, [{"status": "none"}])

    def test_off_and_history(self):
        bus = EventBus(history=2)
        seen = []
        bus.on("e", seen.append)
        bus.off("e", seen.append)
        for i in range(3):
            bus.emit("e", i)
        self.assertEqual(seen, [])
        self.assertEqual([e["payload"] for e in bus.events], [1, 2])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
