from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Protocol


logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    daemon: bool

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def _thread_timer(delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
    return threading.Timer(delay_seconds, callback)


@dataclass
class _Entry:
    handle: TimerHandle
    callback: Callable[[], None]
    token: int


class RoundTimerRegistry:
    """Owns the at-most-one pending round timer per session key.

    Scheduling a key cancels whatever was pending for it. An entry is
    removed when it is cancelled or when it fires. With ``start_timers``
    disabled, handles are created but never started, and ``fire`` runs a
    key's callback on demand.
    """

    def __init__(self, *, timer_factory: TimerFactory | None = None, start_timers: bool = True) -> None:
        self._timer_factory = timer_factory or _thread_timer
        self._start_timers = bool(start_timers)
        self._entries: dict[str, _Entry] = {}
        self._guard = threading.Lock()
        self._next_token = 0

    def schedule(self, session_key: str, delay_seconds: float, callback: Callable[[], None]) -> None:
        with self._guard:
            previous = self._entries.pop(session_key, None)
            if previous is not None:
                previous.handle.cancel()
            self._next_token += 1
            token = self._next_token

            def _fire() -> None:
                if self._claim(session_key, token):
                    callback()

            handle = self._timer_factory(max(0.0, float(delay_seconds)), _fire)
            handle.daemon = True
            self._entries[session_key] = _Entry(handle=handle, callback=_fire, token=token)
            if self._start_timers:
                handle.start()
        logger.debug("Round timer scheduled", extra={"session_key": session_key, "delay_seconds": delay_seconds})

    def _claim(self, session_key: str, token: int) -> bool:
        with self._guard:
            entry = self._entries.get(session_key)
            if entry is None or entry.token != token:
                return False
            del self._entries[session_key]
            return True

    def cancel(self, session_key: str) -> bool:
        with self._guard:
            entry = self._entries.pop(session_key, None)
        if entry is None:
            return False
        entry.handle.cancel()
        logger.debug("Round timer cancelled", extra={"session_key": session_key})
        return True

    def fire(self, session_key: str) -> bool:
        with self._guard:
            entry = self._entries.get(session_key)
        if entry is None:
            return False
        entry.handle.cancel()
        entry.callback()
        return True

    def is_pending(self, session_key: str) -> bool:
        with self._guard:
            return session_key in self._entries

    def pending_keys(self) -> list[str]:
        with self._guard:
            return sorted(self._entries.keys())

    def cancel_all(self) -> None:
        with self._guard:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            entry.handle.cancel()
