"""Debouncing of repeated settings-change notifications.

The settings layer may fire more than once for a single logical edit.
``ChangeDebouncer`` collapses such bursts into one accepted event per key
within a minimum interval.

Usage::

    debouncer = ChangeDebouncer()
    if debouncer.accept("apiKey", 200):
        ...  # react to the change
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger("nightsync.nightscout.sync.debounce")


class ChangeDebouncer:
    """Per-key gate that accepts at most one event per interval.

    A record is created lazily for each key on its first accepted event and
    updated on every later accepted event.  Records live as long as the
    debouncer.  The check and the update happen under one lock, so two
    near-simultaneous events from different threads cannot both pass.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the debouncer.

        Args:
            clock: Monotonic clock returning seconds. Injectable for tests.
        """
        self._clock = clock
        self._last_accepted: dict[str, float] = {}
        self._lock = threading.Lock()

    def accept(self, key: str, min_interval_ms: int) -> bool:
        """Return True if an event for ``key`` should be handled now.

        Accepts when the key has no record or at least ``min_interval_ms``
        elapsed since its last accepted event, and records the current time.
        Otherwise leaves the record untouched and returns False.
        """
        now = self._clock()
        with self._lock:
            last = self._last_accepted.get(key)
            if last is not None and (now - last) * 1000.0 < min_interval_ms:
                logger.debug(
                    "Debounced change for %s (%.0f ms since last)",
                    key, (now - last) * 1000.0,
                )
                return False
            self._last_accepted[key] = now
            return True

    def last_accepted(self, key: str) -> float | None:
        """Return the clock value of the last accepted event for ``key``."""
        with self._lock:
            return self._last_accepted.get(key)

    def __len__(self) -> int:
        return len(self._last_accepted)
