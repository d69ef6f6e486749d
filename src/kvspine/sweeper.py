"""Background expiry sweeper.

┌──────────────────────────────────────────────────────────────────────────┐
│  SWEEPER                                                                 │
│                                                                          │
│   store.__init__ ──► Sweeper(store.gc, interval).start()                 │
│                          │                                               │
│                          ▼                                               │
│   ┌──────────────────── Daemon Thread ─────────────────────┐             │
│   │   while not stop_event.wait(interval):                 │             │
│   │       tick_count += 1                                  │             │
│   │       last_tick = now()                                │             │
│   │       callback()            ◄──── store.gc()           │             │
│   └────────────────────────────────────────────────────────┘             │
│                          ▲                                               │
│   store.close() ──► sweeper.stop()  (stop_event.set(); join)             │
│                                                                          │
│  The sweep runs on its own thread; request operations never wait on     │
│  it except through the store's own locks.                                │
└──────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from kvspine.logging import get_logger

logger = get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 30.0

SweepCallback = Callable[[], Any]


def resolve_interval(interval: float | None) -> float | None:
    """Map a configured interval to the loop interval.

    ``None`` or ``0`` mean the default; a negative interval disables the
    sweeper and yields ``None``.
    """
    if not interval:
        return DEFAULT_INTERVAL_SECONDS
    if interval < 0:
        return None
    return float(interval)


class Sweeper:
    """Runs a callback every ``interval_seconds`` on a daemon thread.

    Example:
        >>> sweeper = Sweeper(store.gc, interval_seconds=5.0, name="file")
        >>> sweeper.start()
        >>> # ... later ...
        >>> sweeper.stop()
    """

    def __init__(
        self,
        callback: SweepCallback,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        *,
        name: str = "kvspine",
    ) -> None:
        self._callback = callback
        self._interval = interval_seconds
        self._name = name
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._started = False
        self._lock = threading.Lock()

    def start(self) -> None:
        if self._started:
            logger.warning("sweeper_already_started", store=self._name)
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop, daemon=True, name=f"kvspine-sweeper-{self._name}"
        )
        self._thread.start()
        self._started = True

    def _loop(self) -> None:
        logger.info("sweeper_started", store=self._name, interval_seconds=self._interval)
        while not self._stop_event.wait(self._interval):
            with self._lock:
                self._tick_count += 1
                self._last_tick = datetime.now(UTC)

            try:
                self._callback()
            except Exception:
                # a failed sweep is retried on the next tick
                logger.exception("tick_failed", store=self._name)

        logger.info("sweeper_stopped", store=self._name)

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the loop to exit and wait up to ``timeout`` for the current tick."""
        if not self._started:
            return

        self._stop_event.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("sweeper_did_not_stop", store=self._name)

        self._started = False

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "store": self._name,
            "tick_count": self._tick_count,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "interval_seconds": self._interval,
        }

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick

    @property
    def interval_seconds(self) -> float:
        return self._interval


__all__ = ["Sweeper", "DEFAULT_INTERVAL_SECONDS", "resolve_interval"]
