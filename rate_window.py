"""
Sliding-window message counter used for flood detection
"""
from collections import deque
from typing import Hashable

from state import BoundedStore


class RateWindowTracker:
    """Counts messages per key inside a trailing time window."""

    def __init__(self, window_ms: int, store: BoundedStore = None):
        self.window_ms = window_ms
        self.store = store if store is not None else BoundedStore()

    def record(self, key: Hashable, now: float) -> int:
        """
        Record a message at `now` (epoch seconds) and return how many
        messages `key` sent within the window, this one included.
        """
        window = self.store.setdefault(key, deque)
        cutoff = self.window_ms / 1000.0

        while window and now - window[0] >= cutoff:
            window.popleft()

        window.append(now)
        return len(window)

    def reset(self, key: Hashable):
        self.store.evict(key)
