"""Tests for nvlink.dispatcher."""

import pytest

from conftest import FakeHost, make_prefs
from nvlink.clients import ClientRegistry
from nvlink.dispatcher import RESERVED_TYPES, Dispatcher
from nvlink.protocol import Message, MessageType, decode_message

A = ("127.0.0.1", 40000)


class Recorder:
    """Collects (address, type, value) replies and play-start calls."""

    def __init__(self, host=None):
        """Initialize empty; optionally watch *host* on play start."""
        self.sent = []
        self.play_starts = []
        self._host = host

    def send(self, address, msg_type, value=""):
        self.sent.append((address, msg_type, value))

    def on_play_start(self):
        """Record the host's running flag at the moment of release."""
        self.play_starts.append(self._host.running if self._host else None)


@pytest.fixture()
def env():
    """Yield (dispatcher, host, registry, recorder) with default prefs."""
    host = FakeHost()
    registry = ClientRegistry()
    recorder = Recorder(host)
    dispatcher = Dispatcher(
        host, make_prefs(), registry,
        send=recorder.send, on_play_start=recorder.on_play_start,
    )
    return dispatcher, host, registry, recorder


def _msg(msg_type: MessageType, value: str = "", origin=A) -> Message:
    return Message(type=msg_type, value=value, origin=origin,
                   raw_type=msg_type.value)


class TestPing:
    """Ping/Pong and client bookkeeping."""

    def test_ping_gets_one_pong(self, env):
        """A Ping from A yields exactly one Pong to A."""
        dispatcher, _, _, rec = env
        dispatcher.dispatch(_msg(MessageType.PING), now=1.0)

        assert rec.sent == [(A, MessageType.PONG, "")]

    def test_ping_registers_client(self, env):
        """The Ping sender is registered and refreshed."""
        dispatcher, _, registry, _ = env
        dispatcher.dispatch(_msg(MessageType.PING), now=1.0)
        dispatcher.dispatch(_msg(MessageType.PING), now=2.5)

        assert registry.last_seen(A) == 2.5
        assert len(registry) == 1

    def test_every_message_touches(self, env):
        """Even dropped messages count as liveness."""
        dispatcher, _, registry, _ = env
        dispatcher.dispatch(decode_message(b"Nonsense:", A), now=7.0)

        assert registry.last_seen(A) == 7.0

    def test_no_origin_no_reply(self, env):
        """A message without an origin is handled but not answered."""
        dispatcher, _, registry, rec = env
        dispatcher.dispatch(_msg(MessageType.PING, origin=None), now=1.0)

        assert rec.sent == []
        assert len(registry) == 0

    def test_no_sender(self):
        """Without a send callable replies are silently dropped."""
        host = FakeHost()
        dispatcher = Dispatcher(host, make_prefs(), ClientRegistry())
        dispatcher.dispatch(_msg(MessageType.PING), now=1.0)


class TestPlayState:
    """Run and pause toggles."""

    def test_play_toggle_twice(self, env):
        """PlayToggle starts, a second PlayToggle stops."""
        dispatcher, host, _, _ = env
        dispatcher.dispatch(_msg(MessageType.PLAY_TOGGLE), now=1.0)
        assert host.running is True

        dispatcher.dispatch(_msg(MessageType.PLAY_TOGGLE), now=1.0)
        assert host.running is False

    def test_play_behaves_like_toggle(self, env):
        """Play while running stops."""
        dispatcher, host, _, _ = env
        host.running = True
        dispatcher.dispatch(_msg(MessageType.PLAY), now=1.0)

        assert host.running is False

    def test_play_releases_before_running(self, env):
        """The transport release happens while still not running."""
        dispatcher, _, _, rec = env
        dispatcher.dispatch(_msg(MessageType.PLAY), now=1.0)

        assert rec.play_starts == [False]

    def test_stopping_does_not_release(self, env):
        """Leaving play mode keeps the transport."""
        dispatcher, host, _, rec = env
        host.running = True
        dispatcher.dispatch(_msg(MessageType.PLAY_TOGGLE), now=1.0)

        assert rec.play_starts == []

    def test_stop_forces_off(self, env):
        """Stop clears running whatever the prior state."""
        dispatcher, host, _, _ = env
        dispatcher.dispatch(_msg(MessageType.STOP), now=1.0)
        assert host.running is False

        host.running = True
        dispatcher.dispatch(_msg(MessageType.STOP), now=1.0)
        assert host.running is False

    def test_pause_toggle_flips(self, env):
        """PauseToggle while running flips paused on, then off."""
        dispatcher, host, _, _ = env
        dispatcher.dispatch(_msg(MessageType.PLAY_TOGGLE), now=1.0)

        dispatcher.dispatch(_msg(MessageType.PAUSE_TOGGLE), now=1.0)
        assert host.paused is True
        dispatcher.dispatch(_msg(MessageType.PAUSE_TOGGLE), now=1.0)
        assert host.paused is False

    def test_pause_is_a_toggle(self, env):
        """Pause inverts like PauseToggle."""
        dispatcher, host, _, _ = env
        host.paused = True
        dispatcher.dispatch(_msg(MessageType.PAUSE), now=1.0)

        assert host.paused is False

    @pytest.mark.parametrize("paused", [True, False])
    def test_unpause_forces_off(self, env, paused):
        """Unpause always leaves paused False."""
        dispatcher, host, _, _ = env
        host.paused = paused
        dispatcher.dispatch(_msg(MessageType.UNPAUSE), now=1.0)

        assert host.paused is False


class TestRefresh:
    """Refresh gating."""

    def test_refresh_scheduled_by_default(self, env):
        """kAutoRefresh defaults to on."""
        dispatcher, host, _, rec = env
        dispatcher.dispatch(_msg(MessageType.REFRESH), now=1.0)

        assert host.refreshes == 1
        assert rec.sent == []

    def test_refresh_disabled_by_pref(self):
        """kAutoRefresh = false suppresses the refresh."""
        host = FakeHost()
        dispatcher = Dispatcher(host, make_prefs(kAutoRefresh=False), ClientRegistry())
        dispatcher.dispatch(_msg(MessageType.REFRESH), now=1.0)

        assert host.refreshes == 0


class TestProjectPath:
    """ProjectPath replies."""

    def test_replies_with_root(self, env):
        """ProjectPath answers the absolute project root to the sender."""
        dispatcher, _, _, rec = env
        dispatcher.dispatch(_msg(MessageType.PROJECT_PATH), now=1.0)

        assert rec.sent == [(A, MessageType.PROJECT_PATH, "/game")]


class TestPingObject:
    """PingObject asset selection."""

    def test_selects_relative_path(self, env):
        """A relative payload is looked up under the asset root."""
        dispatcher, host, _, _ = env
        host.assets["Scripts/Player.cs"] = "handle"
        dispatcher.dispatch(_msg(MessageType.PING_OBJECT, "Scripts/Player.cs"), now=1.0)

        assert host.selected == ["handle"]

    def test_selects_absolute_path(self, env):
        """An absolute payload under the asset root is made relative."""
        dispatcher, host, _, _ = env
        host.assets["Scripts/Player.cs"] = "handle"
        dispatcher.dispatch(
            _msg(MessageType.PING_OBJECT, "/game/Assets/Scripts/Player.cs"), now=1.0,
        )

        assert host.selected == ["handle"]

    def test_missing_asset(self, env):
        """An unknown asset selects nothing and sends nothing."""
        dispatcher, host, _, rec = env
        dispatcher.dispatch(_msg(MessageType.PING_OBJECT, "Nope.cs"), now=1.0)

        assert host.selected == []
        assert rec.sent == []

    def test_outside_asset_root(self, env):
        """Paths escaping the asset root are ignored."""
        dispatcher, host, _, _ = env
        host.assets["../secret"] = "handle"
        dispatcher.dispatch(_msg(MessageType.PING_OBJECT, "/etc/passwd"), now=1.0)

        assert host.selected == []


class TestIgnored:
    """Reserved and unknown types."""

    @pytest.mark.parametrize("msg_type", sorted(RESERVED_TYPES, key=lambda t: t.value))
    def test_reserved_no_op(self, env, msg_type):
        """Reserved types change nothing and get no reply."""
        dispatcher, host, _, rec = env
        dispatcher.dispatch(_msg(msg_type, "x"), now=1.0)

        assert rec.sent == []
        assert (host.running, host.paused, host.refreshes) == (False, False, 0)

    def test_unknown_dropped(self, env):
        """An unknown identifier produces no action and no reply."""
        dispatcher, host, _, rec = env
        dispatcher.dispatch(decode_message(b"Explode:1", A), now=1.0)

        assert rec.sent == []
        assert (host.running, host.paused, host.refreshes) == (False, False, 0)

    def test_pong_dropped(self, env):
        """A stray Pong is not answered."""
        dispatcher, _, _, rec = env
        dispatcher.dispatch(_msg(MessageType.PONG), now=1.0)

        assert rec.sent == []


class TestErrors:
    """Host failures are absorbed."""

    def test_host_error_does_not_stop_batch(self):
        """A raising host action is logged; later messages still run."""
        class BrokenHost(FakeHost):
            def set_paused(self, paused):
                raise RuntimeError("boom")

        host = BrokenHost()
        rec = Recorder()
        dispatcher = Dispatcher(host, make_prefs(), ClientRegistry(), send=rec.send)

        count = dispatcher.dispatch_all(
            [_msg(MessageType.PAUSE), _msg(MessageType.PING)], now=1.0,
        )

        assert count == 2
        assert rec.sent == [(A, MessageType.PONG, "")]
