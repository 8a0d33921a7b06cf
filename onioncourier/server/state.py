"""
Mutex-guarded cell holding the currently published onion identity.
"""

from __future__ import annotations

import threading

from onioncourier.common.models import OnionServiceState


class OnionStateCell:
    """Single-writer, multi-reader holder for ``OnionServiceState``.

    The state model is frozen, so a snapshot handed to a reader can never
    be observed half-updated.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state: OnionServiceState | None = None

    def publish(self, state: OnionServiceState) -> None:
        with self._lock:
            self._state = state

    def snapshot(self) -> OnionServiceState | None:
        with self._lock:
            return self._state

    def clear(self) -> None:
        with self._lock:
            self._state = None
