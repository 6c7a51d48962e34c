"""Map inbound protocol messages to host actions and replies.

The dispatcher holds no state of its own beyond the client registry it
shares with the session.  Each message refreshes its sender in the
registry first, then runs the action for its type.

Example:
    >>> from nvlink.dispatcher import Dispatcher
    >>> d = Dispatcher(host, prefs, registry, send=transport.send)
    >>> d.dispatch(decode_message(b"Ping:", ("127.0.0.1", 40000)), now=1.0)
    # -> Pong sent to 127.0.0.1:40000
"""

import logging

from nvlink.paths import asset_relative_path
from nvlink.protocol import Message, MessageType

log = logging.getLogger(__name__)

# Preference gating Refresh; the host enables it unless told otherwise.
PREF_AUTO_REFRESH = "kAutoRefresh"

# Part of the protocol but deliberately not acted on.
RESERVED_TYPES = frozenset({
    MessageType.BUILD,
    MessageType.VERSION,
    MessageType.UPDATE_PACKAGE,
    MessageType.EXECUTE_TESTS,
    MessageType.RETRIEVE_TEST_LIST,
    MessageType.SHOW_USAGE,
})


class Dispatcher:
    """Executes the action for each message type.

    Args:
        host: Host collaborator (run state, refresh, paths, assets).
        prefs: Object with ``get_bool(key, default)``.
        registry: ClientRegistry refreshed on every message.
        send: Callable ``send(address, msg_type, value)`` for replies;
            None drops replies.
        on_play_start: Callable run before the host starts playing;
            the session uses it to release its transport.
    """

    def __init__(self, host, prefs, registry, send=None, on_play_start=None):
        """Initialize the dispatcher and its type table."""
        self._host = host
        self._prefs = prefs
        self._registry = registry
        self._send = send
        self._on_play_start = on_play_start
        self._handlers = {
            MessageType.PING: self._on_ping,
            MessageType.PLAY: self._on_play,
            MessageType.PLAY_TOGGLE: self._on_play,
            MessageType.STOP: self._on_stop,
            MessageType.PAUSE: self._on_pause,
            MessageType.PAUSE_TOGGLE: self._on_pause,
            MessageType.UNPAUSE: self._on_unpause,
            MessageType.REFRESH: self._on_refresh,
            MessageType.PROJECT_PATH: self._on_project_path,
            MessageType.PING_OBJECT: self._on_ping_object,
        }

    def dispatch(self, message: Message, now: float) -> None:
        """Refresh the sender, then run the action for *message*.

        Errors raised by the host are logged and absorbed so the rest
        of the tick's messages still get processed.
        """
        if message.origin is not None:
            self._registry.touch(message.origin, now)

        handler = self._handlers.get(message.type)
        if handler is None:
            if message.type in RESERVED_TYPES:
                log.debug("ignoring reserved message %s", message.type.value)
            else:
                log.debug("dropping message type %r", message.raw_type)
            return

        log.debug("dispatch %s %r", message.type.value, message.value)
        try:
            handler(message)
        except Exception:
            log.exception("failed to handle %s", message.type.value)

    def dispatch_all(self, messages, now: float) -> int:
        """Dispatch *messages* in order; returns how many were handled."""
        count = 0
        for message in messages:
            self.dispatch(message, now)
            count += 1
        return count

    def _reply(self, message: Message, msg_type: MessageType, value: str = "") -> None:
        """Answer *message* at its origin, if we can send at all."""
        if self._send is None or message.origin is None:
            return
        self._send(message.origin, msg_type, value)

    # -- Handlers ------------------------------------------------------------

    def _on_ping(self, message: Message) -> None:
        self._reply(message, MessageType.PONG)

    def _on_play(self, message: Message) -> None:
        # The transport must be released before the flag flips: entering
        # play mode may reload the host and invalidate the socket.
        if not self._host.is_running():
            if self._on_play_start is not None:
                self._on_play_start()
            self._host.set_running(True)
        else:
            self._host.set_running(False)

    def _on_stop(self, message: Message) -> None:
        self._host.set_running(False)

    def _on_pause(self, message: Message) -> None:
        self._host.set_paused(not self._host.is_paused())

    def _on_unpause(self, message: Message) -> None:
        self._host.set_paused(False)

    def _on_refresh(self, message: Message) -> None:
        if not self._prefs.get_bool(PREF_AUTO_REFRESH, True):
            log.debug("auto-refresh disabled, ignoring Refresh")
            return
        self._host.schedule_refresh()

    def _on_project_path(self, message: Message) -> None:
        self._reply(message, MessageType.PROJECT_PATH,
                    self._host.absolute_project_root())

    def _on_ping_object(self, message: Message) -> None:
        rel = asset_relative_path(self._host.asset_root(), message.value)
        if rel is None:
            log.info("PingObject: %r is not under the asset root", message.value)
            return
        handle = self._host.load_asset(rel)
        if handle is None:
            log.info("PingObject: asset not found: %s", rel)
            return
        self._host.select_in_ui(handle)
