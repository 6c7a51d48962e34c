"""UDP transport for the editor messaging port.

Owns one bound UDP socket.  A background thread receives datagrams,
decodes them, and hands each Message to a callback (normally
``Inbox.enqueue``).  Replies go out with a fire-and-forget ``send``.

Example:
    >>> from nvlink.udp_transport import UdpTransport
    >>> from nvlink.inbox import Inbox
    >>> inbox = Inbox()
    >>> transport = UdpTransport.bind(56002, inbox.enqueue)
    >>> # Datagrams arrive in the background...
    >>> inbox.drain_all()
    [Message(type=<MessageType.PING: 'Ping'>, ...)]
    >>> transport.close()
"""

import logging
import socket
import threading

from nvlink.protocol import MAX_DATAGRAM, Message, decode_message, encode_message

log = logging.getLogger(__name__)


class UdpTransport:
    """Bound UDP socket with a background receive thread.

    Use ``bind()`` to create one.  The constructor takes an already bound
    socket so tests can hand in their own.

    Args:
        sock: A bound ``SOCK_DGRAM`` socket.
        on_message: Callable taking a Message; runs on the receive thread.

    Example:
        >>> t = UdpTransport.bind(0, print, host="127.0.0.1")
        >>> t.send(("127.0.0.1", 40000), MessageType.PONG)  # from nvlink.protocol
        >>> t.close()
    """

    # Receive timeout so the thread notices close() promptly.
    _POLL_S = 0.2

    def __init__(self, sock: socket.socket, on_message):
        """Start the receive thread on *sock*."""
        self._sock = sock
        self._sock.settimeout(self._POLL_S)
        self._on_message = on_message
        self._port = sock.getsockname()[1]
        self._lock = threading.Lock()

        self._running = True
        self._recv_thread = threading.Thread(
            target=self._recv_loop, name="nvlink-recv", daemon=True
        )
        self._recv_thread.start()

    @classmethod
    def bind(cls, port: int, on_message, host: str = "0.0.0.0") -> "UdpTransport":
        """Bind *port* on *host* and start receiving.

        No SO_REUSEADDR: a second process asking for the same port must
        fail so it knows another instance owns it.

        Raises:
            OSError: If the port is already in use or cannot be bound.
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((host, port))
        except OSError:
            sock.close()
            raise
        log.info("bound UDP %s:%d", host, sock.getsockname()[1])
        return cls(sock, on_message)

    @property
    def port(self) -> int:
        """Local port the socket is bound to."""
        return self._port

    @property
    def is_open(self) -> bool:
        """Whether the socket is still open."""
        return self._running

    def _recv_loop(self) -> None:
        """Background thread: receive, decode, hand off, repeat."""
        while self._running:
            try:
                data, addr = self._sock.recvfrom(MAX_DATAGRAM + 1)
            except socket.timeout:
                continue
            except OSError:
                if self._running:
                    log.debug("receive failed", exc_info=True)
                    continue
                break

            if not self._running:
                break
            self._deliver(data, addr)

    def _deliver(self, data: bytes, addr: tuple[str, int]) -> None:
        """Decode one datagram and pass it to the callback."""
        try:
            message = decode_message(data, addr)
        except ValueError as exc:
            log.debug("bad datagram from %s:%d: %s", addr[0], addr[1], exc)
            return

        callback = self._on_message
        if callback is None:
            return
        try:
            callback(message)
        except Exception:
            log.exception("message callback failed for %s", message.type)

    def send(self, address: tuple[str, int], msg_type, value: str = "") -> None:
        """Send one message to *address*; errors are logged, not raised."""
        try:
            data = encode_message(msg_type, value)
        except ValueError as exc:
            log.warning("not sending %s to %s:%d: %s",
                        msg_type, address[0], address[1], exc)
            return

        with self._lock:
            if not self._running:
                return
            try:
                self._sock.sendto(data, address)
            except OSError as exc:
                log.warning("send %s to %s:%d failed: %s",
                            msg_type.value, address[0], address[1], exc)

    def reply(self, message: Message, msg_type, value: str = "") -> None:
        """Send a message back to where *message* came from."""
        if message.origin is None:
            return
        self.send(message.origin, msg_type, value)

    def __enter__(self) -> "UdpTransport":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _wake(self) -> None:
        """Send an empty datagram to ourselves so recvfrom returns now."""
        host = self._sock.getsockname()[0]
        if host in ("0.0.0.0", ""):
            host = "127.0.0.1"
        try:
            self._sock.sendto(b"", (host, self._port))
        except OSError:
            log.debug("wakeup datagram failed; waiting for poll timeout")

    def close(self) -> None:
        """Stop receiving and close the socket.  Safe to call twice.

        Returns without waiting out the receive timeout; the port is
        free once this returns.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._on_message = None
            self._wake()

        if self._recv_thread is not threading.current_thread():
            self._recv_thread.join(timeout=1.0)

        try:
            self._sock.close()
        except OSError:
            pass
        log.info("closed UDP port %d", self._port)
