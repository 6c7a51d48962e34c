"""Registry of editor clients that have talked to us recently.

Every inbound message refreshes its sender's ``last_seen``; a per-tick
sweep forgets senders that have gone quiet for longer than the
liveness window.

Example:
    >>> from nvlink.clients import ClientRegistry
    >>> reg = ClientRegistry()
    >>> reg.touch(("127.0.0.1", 40000), now=10.0)
    >>> reg.sweep(now=13.0)
    set()
    >>> reg.sweep(now=14.5)
    {('127.0.0.1', 40000)}
"""

import logging
import threading
from dataclasses import dataclass, replace

from nvlink.config import CLIENT_TIMEOUT_S

log = logging.getLogger(__name__)


@dataclass
class Client:
    """A remembered peer.

    ``last_seen`` is in host clock seconds, not wall time.
    """

    endpoint: tuple[str, int]
    last_seen: float


class ClientRegistry:
    """Endpoint -> Client map guarded by its own lock.

    Callers iterate ``snapshot()`` copies, never the live map.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._clients: dict[tuple[str, int], Client] = {}
        self._lock = threading.Lock()

    def touch(self, endpoint: tuple[str, int], now: float) -> None:
        """Create or refresh the client for *endpoint*."""
        with self._lock:
            client = self._clients.get(endpoint)
            if client is not None:
                client.last_seen = now
                return
            self._clients[endpoint] = Client(endpoint=endpoint, last_seen=now)
        log.info("client connected: %s:%d", endpoint[0], endpoint[1])

    def sweep(self, now: float, timeout: float = CLIENT_TIMEOUT_S) -> set[tuple[str, int]]:
        """Evict clients silent for more than *timeout* seconds.

        Returns:
            The set of evicted endpoints (empty if none).
        """
        with self._lock:
            stale = {
                endpoint for endpoint, client in self._clients.items()
                if now - client.last_seen > timeout
            }
            for endpoint in stale:
                del self._clients[endpoint]

        for endpoint in stale:
            log.info("client timed out: %s:%d", endpoint[0], endpoint[1])
        return stale

    def snapshot(self) -> list[Client]:
        """Return copies of all clients, ordered by endpoint."""
        with self._lock:
            clients = [replace(c) for c in self._clients.values()]
        return sorted(clients, key=lambda c: c.endpoint)

    def last_seen(self, endpoint: tuple[str, int]) -> float | None:
        """Return the last-seen time for *endpoint*, or None."""
        with self._lock:
            client = self._clients.get(endpoint)
            return client.last_seen if client is not None else None

    def __contains__(self, endpoint) -> bool:
        with self._lock:
            return endpoint in self._clients

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)
