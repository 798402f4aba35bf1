"""
Change events - a minimal publish/subscribe signal for "data changed".

Emitted once per completed refresh pass and once per explicit mark-read
action. Subscribers re-query storage; the event carries only a reason.
"""

import logging
from typing import Callable

logger = logging.getLogger(__name__)

Listener = Callable[[str], None]


class ChangeNotifier:
    """Fan-out of data-changed events to registered listeners."""

    def __init__(self):
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, reason: str):
        for listener in list(self._listeners):
            try:
                listener(reason)
            except Exception:
                logger.exception(f"Change listener failed for event '{reason}'")
