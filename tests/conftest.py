"""Shared pytest fixtures and test doubles for nvlink tests."""

import socket

from nvlink.host import Preferences


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0):
        """Initialize at *start* seconds."""
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        """Move the clock forward by *seconds*."""
        self.now += seconds


class FakeHost:
    """Test double for the host: plain flags, records every call."""

    def __init__(self, project: str = "/game"):
        """Initialize a stopped, unpaused host rooted at *project*."""
        self.running = False
        self.paused = False
        self.refreshes = 0
        self.selected = []
        self.assets = {}
        self.now = 0.0
        self.updates = []
        self.reloads = []
        self.project = project

    def is_running(self) -> bool:
        return self.running

    def set_running(self, running: bool) -> None:
        self.running = running

    def is_paused(self) -> bool:
        return self.paused

    def set_paused(self, paused: bool) -> None:
        self.paused = paused

    def schedule_refresh(self) -> None:
        self.refreshes += 1

    def absolute_project_root(self) -> str:
        return self.project

    def asset_root(self) -> str:
        return self.project + "/Assets"

    def load_asset(self, relative_path: str):
        return self.assets.get(relative_path)

    def select_in_ui(self, handle) -> None:
        self.selected.append(handle)

    def time_since_startup(self) -> float:
        return self.now

    def add_update(self, callback) -> None:
        self.updates.append(callback)

    def remove_update(self, callback) -> None:
        if callback in self.updates:
            self.updates.remove(callback)

    def add_reload(self, callback) -> None:
        self.reloads.append(callback)

    def remove_reload(self, callback) -> None:
        if callback in self.reloads:
            self.reloads.remove(callback)

    def tick(self) -> None:
        """Run a snapshot of the update callbacks once."""
        for callback in list(self.updates):
            callback()

    def reload(self) -> None:
        """Fire the reload callbacks."""
        for callback in list(self.reloads):
            callback()


class FakeTransport:
    """Test double for UdpTransport: records sends, tracks close calls."""

    def __init__(self, port: int, on_message, host: str = "0.0.0.0"):
        """Record bind arguments."""
        self.port = port
        self.on_message = on_message
        self.bind_host = host
        self.sent = []
        self.close_count = 0

    @property
    def is_open(self) -> bool:
        return self.close_count == 0

    def send(self, address, msg_type, value: str = "") -> None:
        """Record (address, msg_type, value)."""
        self.sent.append((address, msg_type, value))

    def close(self) -> None:
        self.close_count += 1


class TransportFactory:
    """Callable standing in for ``UdpTransport.bind``.

    Raises OSError instead of binding when *fail* is set.
    """

    def __init__(self, fail: bool = False):
        """Initialize; created transports land in ``self.created``."""
        self.fail = fail
        self.created = []

    def __call__(self, port, on_message, host="0.0.0.0"):
        if self.fail:
            raise OSError(98, "Address already in use")
        transport = FakeTransport(port, on_message, host)
        self.created.append(transport)
        return transport


def make_prefs(**values) -> Preferences:
    """Build a Preferences store from keyword arguments."""
    return Preferences(values)


def find_free_port() -> int:
    """Find an available UDP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
