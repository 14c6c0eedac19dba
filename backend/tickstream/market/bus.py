"""In-process publish/subscribe bus for price updates."""

from __future__ import annotations

import logging
from collections.abc import Callable
from threading import Lock

from .models import PriceUpdate

logger = logging.getLogger(__name__)

PriceHandler = Callable[[PriceUpdate], None]


class UpdateBus:
    """Fan PriceUpdate events out to any number of handlers.

    Handlers form a set keyed by the handler itself (bound methods of the same
    object compare equal), so subscribing twice delivers once. Delivery is
    synchronous and in subscription order; a failing handler is logged and
    skipped without affecting the others or the publisher.
    """

    def __init__(self) -> None:
        # dict used as an insertion-ordered set
        self._handlers: dict[PriceHandler, None] = {}
        self._lock = Lock()

    def subscribe(self, handler: PriceHandler) -> None:
        with self._lock:
            self._handlers.setdefault(handler, None)

    def unsubscribe(self, handler: PriceHandler) -> None:
        """Remove a handler. No-op if it was never subscribed."""
        with self._lock:
            self._handlers.pop(handler, None)

    def publish(self, update: PriceUpdate) -> int:
        """Deliver an update to every current handler. Returns the success count."""
        with self._lock:
            handlers = list(self._handlers)

        delivered = 0
        for handler in handlers:
            try:
                handler(update)
                delivered += 1
            except Exception:
                logger.exception("Price handler %r failed for %s", handler, update.symbol)
        return delivered

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)

    def __contains__(self, handler: PriceHandler) -> bool:
        with self._lock:
            return handler in self._handlers
