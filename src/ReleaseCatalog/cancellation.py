"""Cooperative cancellation shared by crawl producers, the crawl consumer, and downloads.

A crawl can stall indefinitely on a huge listing tree or a hung endpoint.
:class:`CancellationToken` lets the caller stop it: page-fetch workers check
the token before every request and while waiting on the discovery queue, the
coordinator stops scheduling new pages, and the aggregating consumer discards
any events still queued.  The implementation avoids thread interruption in
favour of explicit checks so the consumer can always drain the queue and the
worker pool can join cleanly.
"""

from __future__ import annotations

import threading
from typing import Optional

from .errors import CrawlCancelledError

__all__ = ["CancellationToken"]


class CancellationToken:
    """Thread-safe cancellation token for cooperative task cancellation.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel("shutdown")
        >>> token.is_cancelled(), token.reason
        (True, 'shutdown')
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        """Signal that cancellation has been requested; the first reason wins."""
        with self._lock:
            if not self._event.is_set():
                self._reason = reason
            self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` elapses; return the cancelled state."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        """Raise :class:`CrawlCancelledError` when cancellation has been requested."""
        if self._event.is_set():
            raise CrawlCancelledError(f"cancelled: {self._reason or 'no reason given'}")
# === NAVMAP v1 ===
# {
#   "module": "ReleaseCatalog.cancellation",
#   "purpose": "Provide the cooperative cancellation token observed by crawl producers and the consumer",
#   "sections": [
#     {"id": "token", "name": "CancellationToken", "anchor": "TOK", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
