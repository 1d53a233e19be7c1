"""
Mute interval bookkeeping for recognizers that transcribe after the fact.

Audio keeps flowing into the model while muted, so every segment has to be
checked against the windows in which the user had muted the recognizer.
"""

import math
import threading
import time
from typing import Callable, List, Optional

from .types import MuteInterval


class MuteJournal:
    """
    Ordered list of mute intervals, oldest first.

    Invariants:
    - starts are non-decreasing
    - at most one interval is open, and it is the last one
    - a closed interval is never reopened; muting again appends a new one

    Thread-safe: set_listening() runs on the control thread while segments
    are checked and pruned on the capture thread.
    """

    def __init__(self, start_muted: bool = False, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._intervals: List[MuteInterval] = []
        if start_muted:
            self._intervals.append(MuteInterval(-math.inf, math.inf))

    @property
    def intervals(self) -> List[MuteInterval]:
        """Copy of the current intervals."""
        with self._lock:
            return [MuteInterval(i.start, i.end) for i in self._intervals]

    def __len__(self) -> int:
        with self._lock:
            return len(self._intervals)

    def _is_listening(self, now: float) -> bool:
        # Must be called with lock held
        return not self._intervals or self._intervals[-1].end <= now

    def is_listening(self, now: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        with self._lock:
            return self._is_listening(now)

    def set_listening(self, enabled: bool, now: Optional[float] = None) -> bool:
        """
        Open or close a mute interval.

        Returns:
            False if the journal was already in the requested state
        """
        now = self._clock() if now is None else now
        with self._lock:
            if self._is_listening(now) == enabled:
                return False

            if enabled:
                last = self._intervals[-1]
                last.end = max(now, last.start)
            else:
                start = now
                if self._intervals:
                    start = max(start, self._intervals[-1].start)
                self._intervals.append(MuteInterval(start))
            return True

    def mute(self, now: Optional[float] = None) -> bool:
        return self.set_listening(False, now)

    def unmute(self, now: Optional[float] = None) -> bool:
        return self.set_listening(True, now)

    def prune(self, before: float) -> int:
        """Drop intervals that ended at or before `before`. Returns the count removed."""
        with self._lock:
            kept = [i for i in self._intervals if i.end > before]
            removed = len(self._intervals) - len(kept)
            self._intervals = kept
            return removed

    def overlaps(self, begin: float, end: float) -> bool:
        with self._lock:
            return any(i.overlaps(begin, end) for i in self._intervals)

    def is_spoken_while_muted(self, begin: float, end: float) -> bool:
        """
        Check an absolute time range against the journal.

        Prunes everything that ended before `begin` first, so callers must
        check segments in chronological order.
        """
        with self._lock:
            self._intervals = [i for i in self._intervals if i.end > begin]
            return any(i.overlaps(begin, end) for i in self._intervals)

    def compact(self, cutoff: float) -> int:
        """
        Drop closed intervals that ended before `cutoff`.

        Used when no segments arrive for a long time; `cutoff` must be older
        than the earliest audio that may still be transcribed.
        """
        return self.prune(cutoff)
