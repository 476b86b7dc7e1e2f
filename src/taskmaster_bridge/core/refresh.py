"""Debounced change notification.

Writes, file-watcher events and tag switches all want the task views to
reload. ``RefreshCoalescer`` collapses bursts of requests into a single
notification fired ``debounce_ms`` after the last request, while
``request_immediate`` fires at once (used after a tag switch, where a stale
view would show the wrong tag).
"""

import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

__all__ = ["RefreshCoalescer", "DEFAULT_DEBOUNCE_MS"]

DEFAULT_DEBOUNCE_MS = 300

Listener = Callable[[], None]
TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


class RefreshCoalescer:
    """Coalesces refresh requests and notifies registered listeners.

    Args:
        debounce_ms: Quiet period before a pending refresh fires
        timer_factory: Builds the timer; ``threading.Timer`` by default
    """

    def __init__(
        self,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        *,
        timer_factory: Optional[TimerFactory] = None,
    ):
        self.debounce_ms = debounce_ms
        self._timer_factory = timer_factory or threading.Timer
        self._listeners: List[Listener] = []
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self.fired = 0

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def request(self) -> None:
        """Schedule a refresh, restarting the quiet period."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = self._timer_factory(self.debounce_ms / 1000.0, self._fire)
            timer.daemon = True
            self._timer = timer
        timer.start()

    def request_immediate(self) -> None:
        """Drop any pending refresh and notify listeners now."""
        self.cancel()
        self._notify()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        self._notify()

    def _notify(self) -> None:
        self.fired += 1
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                # A broken listener must not stop the others
                logger.exception("Refresh listener %r failed", listener)
