"""Headless stand-in for the IDE host process.

Provides the collaborators the session and dispatcher call into: run
state, a cooperative update loop, deferred refresh, project paths,
asset lookup and selection, and a preference store.  Useful for running
nvlink as a standalone daemon and for exercising it end to end.

Example:
    >>> from nvlink.host import HeadlessHost, Preferences
    >>> host = HeadlessHost("/home/me/Game", Preferences({"kAutoRefresh": True}))
    >>> host.add_update(lambda: print("tick"))
    >>> host.tick()
    tick
"""

import logging
import os
import threading
import time

from nvlink.config import TICK_S
from nvlink.paths import asset_root, project_root

log = logging.getLogger(__name__)

# Preference naming the external script editor the host launches.
PREF_EDITOR = "kScriptsDefaultApp"


class Preferences:
    """In-memory preference store.

    Args:
        values: Initial key/value pairs, e.g. the config ``[prefs]`` table.
    """

    def __init__(self, values: dict | None = None):
        """Initialize from *values*."""
        self._values = dict(values or {})
        self._lock = threading.Lock()

    def get_bool(self, key: str, default: bool) -> bool:
        """Return *key* as a bool, or *default* if unset or not a bool."""
        with self._lock:
            value = self._values.get(key)
        return value if isinstance(value, bool) else default

    def get_string(self, key: str, default: str) -> str:
        """Return *key* as a str, or *default* if unset or empty."""
        with self._lock:
            value = self._values.get(key)
        if isinstance(value, str) and value:
            return value
        return default

    def set_string(self, key: str, value: str) -> None:
        """Store *value* under *key*."""
        with self._lock:
            self._values[key] = value


def is_active_editor(prefs) -> bool:
    """Return True when the host's external editor is an nvim binary.

    Example:
        >>> is_active_editor(Preferences({"kScriptsDefaultApp": "/usr/bin/nvim-qt"}))
        True
    """
    editor = prefs.get_string(PREF_EDITOR, "")
    return "nvim" in os.path.basename(editor).lower()


class HeadlessHost:
    """Minimal host: flags, a clock, and a cooperative update loop.

    Update callbacks run on whichever thread calls ``tick()``; each tick
    iterates a snapshot of the callback list, so callbacks added during
    a tick first run on the next one.

    Args:
        project: Project root directory.
        prefs: Preference store.
        clock: Monotonic clock function; injectable for tests.
    """

    def __init__(self, project: str, prefs: Preferences, clock=time.monotonic):
        """Initialize a stopped, unpaused host."""
        self.prefs = prefs
        self._assets = asset_root(project)
        self._clock = clock
        self._started = clock()

        self._running = False
        self._paused = False
        self._updates = []
        self._reloads = []
        self._refresh_pending = False
        self._reload_pending = False

        self.refresh_count = 0
        self.selection = []

    # -- Run state -----------------------------------------------------------

    def is_running(self) -> bool:
        """Whether the host is in play mode."""
        return self._running

    def set_running(self, running: bool) -> None:
        """Enter or leave play mode; a change triggers a reload next tick."""
        if running == self._running:
            return
        self._running = running
        if not running:
            self._paused = False
        self._reload_pending = True
        log.info("play mode %s", "on" if running else "off")

    def is_paused(self) -> bool:
        """Whether play mode is paused."""
        return self._paused

    def set_paused(self, paused: bool) -> None:
        """Pause or resume play mode."""
        if paused != self._paused:
            log.info("pause %s", "on" if paused else "off")
        self._paused = paused

    # -- Update loop ---------------------------------------------------------

    def time_since_startup(self) -> float:
        """Seconds since the host was created, on the monotonic clock."""
        return self._clock() - self._started

    def add_update(self, callback) -> None:
        """Call *callback* once per tick until removed."""
        self._updates.append(callback)

    def remove_update(self, callback) -> None:
        """Stop calling *callback*; unknown callbacks are ignored."""
        try:
            self._updates.remove(callback)
        except ValueError:
            pass

    def add_reload(self, callback) -> None:
        """Call *callback* after each run-state reload."""
        self._reloads.append(callback)

    def remove_reload(self, callback) -> None:
        """Stop calling *callback* on reload; unknown callbacks are ignored."""
        try:
            self._reloads.remove(callback)
        except ValueError:
            pass

    def tick(self) -> None:
        """Run one iteration of the update loop."""
        updates = list(self._updates)

        if self._reload_pending:
            self._reload_pending = False
            for callback in list(self._reloads):
                self._call(callback)

        if self._refresh_pending:
            self._refresh_pending = False
            self._refresh()

        for callback in updates:
            self._call(callback)

    def _call(self, callback) -> None:
        try:
            callback()
        except Exception:
            log.exception("update callback %r failed", callback)

    def run(self, shutdown: threading.Event, interval: float = TICK_S) -> int:
        """Tick every *interval* seconds until *shutdown* is set.

        Returns the number of ticks run.
        """
        ticks = 0
        while not shutdown.is_set():
            self.tick()
            ticks += 1
            shutdown.wait(interval)
        return ticks

    # -- Workspace -----------------------------------------------------------

    def schedule_refresh(self) -> None:
        """Refresh the asset database on the next tick.

        Requests made before that tick collapse into one refresh.
        """
        self._refresh_pending = True

    def _refresh(self) -> None:
        self.refresh_count += 1
        log.info("refreshing assets under %s", self._assets)

    def asset_root(self) -> str:
        """Absolute path of the project's asset directory."""
        return self._assets

    def absolute_project_root(self) -> str:
        """Absolute path of the project root, the asset directory's parent."""
        return project_root(self._assets)

    def load_asset(self, relative_path: str) -> str | None:
        """Return the absolute path of an existing asset, or None."""
        path = os.path.normpath(os.path.join(self._assets, relative_path))
        if os.path.commonpath([path, self._assets]) != self._assets:
            return None
        if not os.path.exists(path):
            return None
        return path

    def select_in_ui(self, handle: str) -> None:
        """Highlight *handle*; headless, so just remember and log it."""
        self.selection = [handle]
        log.info("selected %s", handle)
