"""
beatglow - Tempo estimation
Average inter-beat interval to BPM, folded by octaves into 60-180.
"""

from dataclasses import dataclass

import numpy as np

from logging_utils import log_event

MIN_BPM = 60
MAX_BPM = 180


@dataclass(frozen=True)
class TempoEstimate:
    """Tempo derived from the beat history. bpm == 0 means no estimate yet."""
    bpm: int = 0                # Octave-corrected BPM (60-180)
    raw_bpm: int = 0            # 60000 / avg_interval_ms, rounded
    avg_interval_ms: float = 0.0

    @property
    def is_valid(self) -> bool:
        return self.bpm > 0


NO_ESTIMATE = TempoEstimate()


def fold_octaves(rate: float, min_bpm: float = MIN_BPM, max_bpm: float = MAX_BPM) -> float:
    """Halve or double ``rate`` until it lands in [min_bpm, max_bpm]."""
    if rate <= 0:
        return 0.0
    while rate > max_bpm:
        rate /= 2.0
    while rate < min_bpm:
        rate *= 2.0
    return rate


def estimate_tempo(timestamps_ms) -> TempoEstimate:
    """Estimate tempo from increasing beat timestamps in milliseconds."""
    times = np.asarray(list(timestamps_ms), dtype=np.float64)
    if times.size < 2:
        return NO_ESTIMATE

    intervals = np.diff(times)
    avg_interval = float(np.mean(intervals))
    if not np.isfinite(avg_interval) or avg_interval <= 0:
        return NO_ESTIMATE

    rate = 60000.0 / avg_interval
    raw_bpm = int(round(rate))
    # Very long gaps round to zero BPM; fold the unrounded rate instead
    corrected = fold_octaves(raw_bpm if raw_bpm > 0 else rate)
    bpm = int(round(corrected))
    if bpm != raw_bpm:
        log_event("DEBUG", "Tempo", "Octave corrected", raw_bpm=raw_bpm, bpm=bpm)

    return TempoEstimate(bpm=bpm, raw_bpm=max(raw_bpm, 1), avg_interval_ms=avg_interval)


class TempoEstimator:
    """Keeps the latest TempoEstimate for a beat history."""

    def __init__(self):
        self.current = NO_ESTIMATE

    def estimate(self, history) -> TempoEstimate:
        self.current = estimate_tempo(history)
        return self.current

    def reset(self) -> None:
        self.current = NO_ESTIMATE
