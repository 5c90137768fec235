# signaturepro/core/events.py

"""
In-process publish/subscribe channel between the signing coordinator and
its side effects (realtime broadcast, transactional email).

Subscribers are independent: one failing handler is logged and the rest
still run. Publishing happens after the database transaction commits, so
nothing a subscriber does can undo a recorded state change.
"""

import threading
from typing import Any, Callable, List, Tuple

from signaturepro.utils.logger import get_logger

logger = get_logger(__name__)

Handler = Callable[[Any], None]


class EventBus:
    """Synchronous fan-out of domain events to named subscribers"""

    def __init__(self):
        self._subscribers: List[Tuple[str, Handler]] = []
        self._lock = threading.Lock()

    def subscribe(self, name: str, handler: Handler) -> None:
        """Register a handler under a name used in logs"""
        with self._lock:
            self._subscribers.append((name, handler))
        logger.debug("Subscriber registered", subscriber=name)

    def unsubscribe(self, name: str) -> None:
        """Remove every handler registered under name"""
        with self._lock:
            self._subscribers = [(n, h) for n, h in self._subscribers if n != name]

    @property
    def subscribers(self) -> List[str]:
        with self._lock:
            return [name for name, _ in self._subscribers]

    def publish(self, event: Any) -> None:
        """Deliver event to every subscriber, isolating failures"""
        with self._lock:
            subscribers = list(self._subscribers)

        for name, handler in subscribers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    "Event subscriber failed",
                    subscriber=name,
                    topic=str(getattr(event, "topic", "")),
                    error_message=str(e),
                    exc_info=True,
                )
