"""Garbage collection pause recording.

CPython keeps no pause history of its own, so pauses are measured with a
``gc.callbacks`` hook. Recording is opt-in: nothing is measured until a
recorder is installed.
"""

import gc
import threading
import time
from collections import deque


class GCPauseRecorder:
    """
    Records the duration and end time of each garbage collection.

    Keeps a bounded history so a long-running process never grows it without
    limit.
    """

    def __init__(self, maxlen: int = 256) -> None:
        """
        Initialize the GCPauseRecorder.

        Args:
            maxlen: How many pauses to keep. Default 256.
        """
        self._pauses: deque[float] = deque(maxlen=max(1, maxlen))
        self._lock = threading.RLock()  # Callbacks can fire while the lock is held
        self._started: float | None = None
        self._last_gc = 0.0
        self._pause_total = 0.0

    @property
    def is_installed(self) -> bool:
        """Check if the recorder is hooked into the collector."""
        return self._on_gc in gc.callbacks

    def install(self) -> None:
        """Start recording pauses."""
        if self.is_installed:
            return
        gc.callbacks.append(self._on_gc)

    def uninstall(self) -> None:
        """Stop recording pauses. Recorded history is kept."""
        if self.is_installed:
            gc.callbacks.remove(self._on_gc)
        self._started = None

    def reset(self) -> None:
        """Forget all recorded pauses."""
        with self._lock:
            self._pauses.clear()
            self._last_gc = 0.0
            self._pause_total = 0.0

    def _on_gc(self, phase: str, info: dict) -> None:
        if phase == "start":
            self._started = time.perf_counter()
            return
        if self._started is None:
            return
        pause = time.perf_counter() - self._started
        self._started = None
        with self._lock:
            self._pauses.append(pause)
            self._pause_total += pause
            self._last_gc = time.time()

    @property
    def last_gc(self) -> float:
        """Epoch seconds of the last recorded collection, 0.0 if none."""
        with self._lock:
            return self._last_gc

    @property
    def pause_total(self) -> float:
        """Total seconds spent in recorded collections."""
        with self._lock:
            return self._pause_total

    def get_pauses(self) -> list[float]:
        """Get recorded pause durations, newest first."""
        with self._lock:
            return list(reversed(self._pauses))


default_recorder = GCPauseRecorder()
