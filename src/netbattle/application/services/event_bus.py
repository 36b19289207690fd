import bisect
import logging
import threading
from typing import Callable, Dict, List, NamedTuple, Type


Handler = Callable[[object], None]

logger = logging.getLogger(__name__)


class _Subscription(NamedTuple):
    priority: int
    order: int
    handler: Handler


class EventBus:
    """Synchronous in-process publisher for battle events.

    Handlers run in priority order (lower first, then subscription order).
    Round timers publish from their own threads, so the subscriber table is
    guarded and each publish walks a snapshot of it. A failing handler is
    logged and skipped; the rest still run.
    """

    def __init__(self) -> None:
        self._subscriptions: Dict[Type[object], List[_Subscription]] = {}
        self._sequence = 0
        self._lock = threading.Lock()
        self._errors = threading.local()

    def subscribe(self, event_type: Type[object], handler: Handler, *, priority: int = 100) -> None:
        with self._lock:
            entry = _Subscription(int(priority), self._sequence, handler)
            self._sequence += 1
            bisect.insort(self._subscriptions.setdefault(event_type, []), entry, key=lambda row: (row.priority, row.order))

    def unsubscribe(self, event_type: Type[object], handler: Handler) -> bool:
        with self._lock:
            current = self._subscriptions.get(event_type, [])
            remaining = [entry for entry in current if entry.handler != handler]
            if len(remaining) == len(current):
                return False
            self._subscriptions[event_type] = remaining
            return True

    def publish(self, event: object) -> None:
        with self._lock:
            targets = tuple(self._subscriptions.get(type(event), ()))
        errors: List[Exception] = []
        for entry in targets:
            try:
                entry.handler(event)
            except Exception as exc:
                errors.append(exc)
                logger.exception(
                    "Battle event handler failed and was isolated",
                    extra={
                        "event_type": type(event).__name__,
                        "handler": getattr(entry.handler, "__qualname__", repr(entry.handler)),
                        "priority": entry.priority,
                        "session_key": getattr(event, "session_key", None),
                    },
                )
        self._errors.last = errors

    def last_publish_errors(self) -> List[Exception]:
        """Errors raised by handlers during this thread's most recent publish."""
        return list(getattr(self._errors, "last", ()))
