"""
beatglow - Beat gate
Collapses bursts of spectral peaks into single beat events and keeps the
bounded history of accepted beat times used for tempo estimation.
"""

from collections import deque
from dataclasses import dataclass
from typing import Iterator, Optional

from logging_utils import log_event


class BeatHistory:
    """Bounded FIFO of strictly increasing beat timestamps (ms).

    When full, appending drops the oldest entry.
    """

    def __init__(self, capacity: int = 20):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = int(capacity)
        self._times: deque[float] = deque(maxlen=self.capacity)

    def append(self, timestamp_ms: float) -> None:
        if self._times and timestamp_ms <= self._times[-1]:
            raise ValueError(
                f"beat timestamps must increase: {timestamp_ms} <= {self._times[-1]}"
            )
        self._times.append(float(timestamp_ms))

    def clear(self) -> None:
        self._times.clear()

    @property
    def last(self) -> Optional[float]:
        return self._times[-1] if self._times else None

    def recent(self, count: int) -> list[float]:
        if count <= 0:
            return []
        return list(self._times)[-count:]

    def as_list(self) -> list[float]:
        return list(self._times)

    def __len__(self) -> int:
        return len(self._times)

    def __iter__(self) -> Iterator[float]:
        return iter(list(self._times))


@dataclass(frozen=True)
class BeatEvent:
    """An accepted beat"""
    timestamp_ms: float   # Monotonic time of acceptance
    beat_count: int       # Beats accepted since the gate was created
    peak_count: int       # Peaks found in the frame that triggered it


class BeatGate:
    """Time-domain debounce between detected peaks and beat events."""

    def __init__(self, capacity: int = 20, flash_ms: float = 100.0):
        self.history = BeatHistory(capacity)
        self.flash_ms = float(flash_ms)
        # Monotonic for the life of the gate; reset() leaves it alone
        self.beat_count = 0
        self._last_accepted_ms: Optional[float] = None

    def on_frame(self, peaks, now_ms: float, min_peak_distance_ms: float) -> Optional[BeatEvent]:
        """Accept a beat when peaks are present and the debounce window has passed.

        Returns a BeatEvent on acceptance, otherwise None.
        """
        if not peaks:
            return None

        last = self._last_accepted_ms
        if last is not None and not (now_ms - last > min_peak_distance_ms):
            return None

        self.history.append(now_ms)
        self._last_accepted_ms = now_ms
        self.beat_count += 1
        log_event("DEBUG", "Beat", "Beat accepted",
                  count=self.beat_count, peaks=len(peaks), t_ms=f"{now_ms:.0f}")
        return BeatEvent(timestamp_ms=now_ms, beat_count=self.beat_count, peak_count=len(peaks))

    @property
    def last_beat_ms(self) -> Optional[float]:
        return self._last_accepted_ms

    def is_flashing(self, now_ms: float) -> bool:
        """True while the most recent beat is younger than ``flash_ms``."""
        if self._last_accepted_ms is None:
            return False
        return 0.0 <= now_ms - self._last_accepted_ms < self.flash_ms

    def reset(self) -> None:
        """Forget beat history; the running beat count is kept."""
        self.history.clear()
        self._last_accepted_ms = None
