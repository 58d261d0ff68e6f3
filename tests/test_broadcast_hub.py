"""Tests for the broadcast hub and observer sessions.

Covers:
- register_session() welcome-once behaviour and duplicate registration
- publish() fan-out, failure isolation and late joiners
- unregister_session() / close_all() registry maintenance
"""

import asyncio

import pytest

from capture_relay.config import BroadcastConfig
from capture_relay.relay.hub import BroadcastHub
from capture_relay.relay.session import ObserverSession

WELCOME = "welcome aboard"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _FakeWebSocket:
    """Records frames; can be told to fail or stall on send, or wait on a gate."""

    def __init__(self, *, fail: bool = False, stall: float = 0.0):
        self.fail = fail
        self.stall = stall
        self.gate = None
        self.sent: list[dict] = []
        self.close_code = None

    async def send_json(self, message):
        if self.gate is not None:
            await self.gate.wait()
        if self.stall:
            await asyncio.sleep(self.stall)
        if self.fail:
            raise RuntimeError("socket is closed")
        self.sent.append(message)

    async def close(self, code: int = 1000):
        self.close_code = code

    def events(self, name: str) -> list:
        return [m["data"] for m in self.sent if m["event"] == name]


def _make_hub(send_timeout: float = 1.0) -> BroadcastHub:
    return BroadcastHub(BroadcastConfig(welcome_message=WELCOME, send_timeout=send_timeout))


def _make_session(**kwargs) -> ObserverSession:
    return ObserverSession(_FakeWebSocket(**kwargs))


# ---------------------------------------------------------------------------
# TestRegisterSession
# ---------------------------------------------------------------------------


class TestRegisterSession:
    """Welcome acknowledgment and registry membership."""

    @pytest.mark.asyncio
    async def test_welcome_sent_to_new_session(self):
        hub = _make_hub()
        session = _make_session()

        assert await hub.register_session(session) is True

        assert session.websocket.sent == [{"event": "connected", "data": WELCOME}]
        assert hub.is_registered(session)
        assert hub.session_count == 1

    @pytest.mark.asyncio
    async def test_welcome_not_sent_to_other_sessions(self):
        hub = _make_hub()
        a, b = _make_session(), _make_session()

        await hub.register_session(a)
        await hub.register_session(b)

        assert a.websocket.events("connected") == [WELCOME]
        assert b.websocket.events("connected") == [WELCOME]

    @pytest.mark.asyncio
    async def test_duplicate_registration_is_noop(self):
        hub = _make_hub()
        session = _make_session()

        await hub.register_session(session)
        await hub.register_session(session)
        await hub.publish("img1.jpg")

        assert session.websocket.events("connected") == [WELCOME]
        assert session.websocket.events("sendData") == ["img1.jpg"]
        assert hub.session_count == 1

    @pytest.mark.asyncio
    async def test_session_failing_welcome_is_not_registered(self):
        hub = _make_hub()
        session = _make_session(fail=True)

        assert await hub.register_session(session) is False
        assert hub.session_count == 0
        assert session.closed


# ---------------------------------------------------------------------------
# TestPublish
# ---------------------------------------------------------------------------


class TestPublish:
    """Fan-out to the sessions registered at publish time."""

    @pytest.mark.asyncio
    async def test_publish_with_no_sessions(self):
        hub = _make_hub()
        assert await hub.publish("img1.jpg") == 0
        assert hub.stats["total_published"] == 1

    @pytest.mark.asyncio
    async def test_all_registered_sessions_receive_artifact(self):
        hub = _make_hub()
        a, b = _make_session(), _make_session()
        await hub.register_session(a)
        await hub.register_session(b)

        delivered = await hub.publish("img2.jpg")

        assert delivered == 2
        assert a.websocket.sent[-1] == {"event": "sendData", "data": "img2.jpg"}
        assert b.websocket.sent[-1] == {"event": "sendData", "data": "img2.jpg"}

    @pytest.mark.asyncio
    async def test_late_joiner_gets_nothing_from_earlier_publish(self):
        hub = _make_hub()
        a, b = _make_session(), _make_session()
        await hub.register_session(a)
        await hub.register_session(b)
        await hub.publish("img2.jpg")

        c = _make_session()
        await hub.register_session(c)

        assert c.websocket.events("sendData") == []
        assert c.websocket.events("connected") == [WELCOME]

    @pytest.mark.asyncio
    async def test_failed_send_does_not_block_others(self):
        hub = _make_hub()
        good, bad, other = _make_session(), _make_session(), _make_session()
        for s in (good, bad, other):
            await hub.register_session(s)
        bad.websocket.fail = True

        delivered = await hub.publish("img3.jpg")

        assert delivered == 2
        assert good.websocket.events("sendData") == ["img3.jpg"]
        assert other.websocket.events("sendData") == ["img3.jpg"]
        # Failed session is removed eagerly
        assert not hub.is_registered(bad)
        assert hub.session_count == 2
        assert hub.stats["total_failed_sends"] == 1

    @pytest.mark.asyncio
    async def test_stalled_session_times_out_without_delaying_others(self):
        hub = _make_hub(send_timeout=0.1)
        fast, slow = _make_session(), _make_session()
        await hub.register_session(fast)
        await hub.register_session(slow)
        slow.websocket.stall = 5.0

        loop = asyncio.get_running_loop()
        started = loop.time()
        delivered = await hub.publish("img4.jpg")
        elapsed = loop.time() - started

        assert delivered == 1
        assert fast.websocket.events("sendData") == ["img4.jpg"]
        assert not hub.is_registered(slow)
        assert elapsed < 1.0

    @pytest.mark.asyncio
    async def test_disconnected_session_before_publish(self):
        hub = _make_hub()
        a, b = _make_session(), _make_session()
        await hub.register_session(a)
        await hub.register_session(b)

        hub.unregister_session(a)
        delivered = await hub.publish("img5.jpg")

        assert delivered == 1
        assert a.websocket.events("sendData") == []
        assert b.websocket.events("sendData") == ["img5.jpg"]

    @pytest.mark.asyncio
    async def test_session_dropped_without_unregister(self):
        hub = _make_hub()
        a, b = _make_session(), _make_session()
        await hub.register_session(a)
        await hub.register_session(b)
        a.websocket.fail = True

        assert await hub.publish("img6.jpg") == 1
        assert await hub.publish("img7.jpg") == 1
        assert b.websocket.events("sendData") == ["img6.jpg", "img7.jpg"]

    @pytest.mark.asyncio
    async def test_failed_and_stalled_sockets_are_closed(self):
        hub = _make_hub(send_timeout=0.1)
        good, bad, slow = _make_session(), _make_session(), _make_session()
        for s in (good, bad, slow):
            await hub.register_session(s)
        bad.websocket.fail = True
        slow.websocket.stall = 5.0

        assert await hub.publish("img8.jpg") == 1

        assert bad.websocket.close_code == 1011
        assert slow.websocket.close_code == 1011
        assert good.websocket.close_code is None
        assert hub.sessions() == [good]

    @pytest.mark.asyncio
    async def test_session_joining_mid_publish_is_excluded(self):
        hub = _make_hub()
        a, b = _make_session(), _make_session()
        await hub.register_session(a)
        await hub.register_session(b)
        gate = asyncio.Event()
        a.websocket.gate = gate

        task = asyncio.create_task(hub.publish("img9.jpg"))
        await asyncio.sleep(0)
        assert not task.done()

        c = _make_session()
        assert await hub.register_session(c) is True
        gate.set()
        delivered = await task

        assert delivered == 2
        assert a.websocket.events("sendData") == ["img9.jpg"]
        assert b.websocket.events("sendData") == ["img9.jpg"]
        assert c.websocket.events("sendData") == []
        assert c.websocket.events("connected") == [WELCOME]
        assert hub.session_count == 3

    @pytest.mark.asyncio
    async def test_stats_list_observers(self):
        hub = _make_hub()
        a, b = _make_session(), _make_session()
        await hub.register_session(a)
        await hub.register_session(b)
        await hub.publish("img10.jpg")

        observers = hub.stats["observers"]

        assert [o["session_id"] for o in observers] == [a.session_id, b.session_id]
        assert all(o["messages_sent"] == 2 for o in observers)


# ---------------------------------------------------------------------------
# TestUnregister
# ---------------------------------------------------------------------------


class TestUnregister:
    """Registry removal and shutdown."""

    def test_unregister_unknown_session_is_silent(self):
        hub = _make_hub()
        hub.unregister_session(_make_session())
        assert hub.session_count == 0

    @pytest.mark.asyncio
    async def test_unregister_marks_session_closed(self):
        hub = _make_hub()
        session = _make_session()
        await hub.register_session(session)

        hub.unregister_session(session)

        assert session.closed
        assert await session.send("sendData", "x") is False

    @pytest.mark.asyncio
    async def test_close_all(self):
        hub = _make_hub()
        a, b = _make_session(), _make_session()
        await hub.register_session(a)
        await hub.register_session(b)

        await hub.close_all()

        assert hub.session_count == 0
        assert a.websocket.close_code == 1001
        assert b.websocket.close_code == 1001
