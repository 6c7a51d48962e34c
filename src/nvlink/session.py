"""Session lifecycle for the editor messaging port.

A SessionController owns everything one integration needs: the
transport, the inbox it fills, the client registry, and the dispatcher.
It hooks itself into the host's update loop:

- one tick after ``start()`` it binds the messaging port,
- every tick ``pump()`` drains the inbox and sweeps stale clients,
- ``shutdown()`` undoes all of it, exactly once.

States::

    INERT                       not the active external editor
    UNBOUND -> BINDING -> BOUND -> UNBOUND
                       \\-> DISABLED   port taken; no retry

Example:
    >>> from nvlink.session import SessionController
    >>> session = SessionController(host, prefs)
    >>> session.start()
    >>> host.run(shutdown_event)   # ticks bind, then pump
    >>> session.shutdown()
"""

import atexit
import enum
import logging
import os
import threading

from nvlink.clients import ClientRegistry
from nvlink.config import BASE_PORT, CLIENT_TIMEOUT_S
from nvlink.dispatcher import Dispatcher
from nvlink.inbox import Inbox
from nvlink.udp_transport import UdpTransport

log = logging.getLogger(__name__)


def debugging_port(pid: int | None = None) -> int:
    """Return the host's debugger port for process *pid*.

    Reserved by convention; nvlink never binds it.

    Example:
        >>> debugging_port(1234)
        56234
    """
    if pid is None:
        pid = os.getpid()
    return BASE_PORT + pid % 1000


def messaging_port(pid: int | None = None) -> int:
    """Return the editor messaging port for process *pid*.

    Example:
        >>> messaging_port(1999)
        57001
    """
    return debugging_port(pid) + 2


class SessionState(enum.Enum):
    """Lifecycle states of a SessionController."""

    INERT = "inert"
    UNBOUND = "unbound"
    BINDING = "binding"
    BOUND = "bound"
    DISABLED = "disabled"


class SessionController:
    """Binds, pumps and tears down one messaging session.

    Args:
        host: Host collaborator; besides what the Dispatcher uses it must
            offer ``add_update``/``remove_update``,
            ``add_reload``/``remove_reload`` and ``time_since_startup``.
        prefs: Preference store passed to the Dispatcher.
        enabled: False leaves the session INERT.
        pid: Process id for port derivation; defaults to our own.
        timeout: Client liveness window in seconds.
        bind_host: Interface to bind.
        transport_factory: ``factory(port, on_message, host=...)``
            returning a transport; raises OSError on conflict.
        inbox: Optional Inbox (e.g. a bounded one).
    """

    def __init__(self, host, prefs, enabled: bool = True, pid: int | None = None,
                 timeout: float = CLIENT_TIMEOUT_S, bind_host: str = "0.0.0.0",
                 transport_factory=UdpTransport.bind, inbox: Inbox | None = None):
        """Initialize an unbound session; nothing happens until start()."""
        self._host = host
        self._enabled = enabled
        self._pid = pid
        self._timeout = timeout
        self._bind_host = bind_host
        self._transport_factory = transport_factory

        self.inbox = inbox if inbox is not None else Inbox()
        self.registry = ClientRegistry()
        self.dispatcher = Dispatcher(
            host, prefs, self.registry,
            send=self._send,
            on_play_start=self.release_transport,
        )

        self._transport = None
        self._state = SessionState.UNBOUND
        self._lock = threading.Lock()
        self._subscribed = False
        self._bind_pending = False
        self._atexit_registered = False

    # -- Properties ----------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def port(self) -> int:
        """The messaging port this session binds (or would bind)."""
        return messaging_port(self._pid)

    @property
    def host(self):
        """The host collaborator."""
        return self._host

    @property
    def transport(self):
        """The live transport, or None when not bound."""
        return self._transport

    # -- Lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """Subscribe to the host update loop and schedule the bind.

        Does nothing when the session is disabled by configuration or
        has already been started.
        """
        with self._lock:
            if not self._enabled:
                self._state = SessionState.INERT
                log.info("nvim is not the active external editor; staying inert")
                return
            if self._subscribed:
                return
            self._subscribed = True
            self._bind_pending = True
            self._state = SessionState.BINDING

        self._host.add_update(self._bind_tick)
        self._host.add_update(self.pump)
        self._host.add_reload(self._on_host_reload)

    def _bind_tick(self) -> None:
        """Run-once update callback: bind the messaging port."""
        self._host.remove_update(self._bind_tick)
        with self._lock:
            if not self._bind_pending:
                return
            self._bind_pending = False

        port = self.port
        try:
            transport = self._transport_factory(
                port, self.inbox.enqueue, host=self._bind_host
            )
        except OSError as exc:
            log.warning(
                "unable to use UDP port %d for editor messaging: %s; "
                "check whether another process owns it or a firewall blocks it",
                port, exc,
            )
            with self._lock:
                self._state = SessionState.DISABLED
            self._register_atexit()
            return

        with self._lock:
            if not self._subscribed:
                # Shut down while we were binding.
                transport.close()
                return
            self._transport = transport
            self._state = SessionState.BOUND
        log.info("editor messaging on UDP port %d", port)
        self._register_atexit()

    def _on_host_reload(self) -> None:
        """Re-bind one tick after the host reloads, if we were released."""
        with self._lock:
            if not self._subscribed or self._state is not SessionState.UNBOUND:
                return
            self._bind_pending = True
            self._state = SessionState.BINDING
        self._host.add_update(self._bind_tick)

    def _register_atexit(self) -> None:
        with self._lock:
            if self._atexit_registered:
                return
            self._atexit_registered = True
        atexit.register(self.shutdown)

    def release_transport(self) -> None:
        """Close the transport but stay subscribed.

        Used before the host enters play mode.  The port is bound again
        after the host's next reload.
        """
        with self._lock:
            transport = self._transport
            self._transport = None
            if self._state is SessionState.BOUND:
                self._state = SessionState.UNBOUND
        if transport is not None:
            transport.close()

    def shutdown(self) -> None:
        """Release the transport and every subscription.

        Idempotent; safe to call from an exit hook racing a normal
        shutdown.
        """
        with self._lock:
            transport = self._transport
            self._transport = None
            was_subscribed = self._subscribed
            self._subscribed = False
            self._bind_pending = False
            unregister = self._atexit_registered
            self._atexit_registered = False
            if self._state is not SessionState.INERT:
                self._state = SessionState.UNBOUND

        if transport is not None:
            transport.close()
        if was_subscribed:
            self._host.remove_update(self._bind_tick)
            self._host.remove_update(self.pump)
            self._host.remove_reload(self._on_host_reload)
            log.info("session shut down")
        if unregister:
            atexit.unregister(self.shutdown)

    # -- Per-tick work -------------------------------------------------------

    def pump(self) -> int:
        """Dispatch every queued message, then sweep stale clients.

        Runs on the host update thread.  Never raises.  Returns the
        number of messages dispatched.
        """
        try:
            messages = self.inbox.drain_all()
            now = self._host.time_since_startup()
            count = self.dispatcher.dispatch_all(messages, now)
            self.registry.sweep(now, self._timeout)
            return count
        except Exception:
            log.exception("session pump failed")
            return 0

    def _send(self, address: tuple[str, int], msg_type, value: str = "") -> None:
        """Reply through the current transport, if any."""
        transport = self._transport
        if transport is None:
            log.debug("no transport; dropping %s reply", msg_type.value)
            return
        transport.send(address, msg_type, value)
