"""
beatglow - Spectral normalization for the renderer
Maps a linear-bin decibel frame onto log-spaced bands scaled to 0..1,
compressed and smoothed against the previous output.
"""

from typing import Optional

import numpy as np

from config import RenderConfig


def normalize_spectrum(
    db_frame,
    band_count: int,
    prev_frame: Optional[np.ndarray] = None,
    sample_rate: int = 44100,
    fft_size: Optional[int] = None,
    settings: Optional[RenderConfig] = None,
) -> np.ndarray:
    """Normalize one decibel frame into ``band_count`` values in [0, 1].

    Args:
        db_frame: per-bin decibel values (linear bin spacing).
        band_count: number of output bands.
        prev_frame: previous output; smoothing is skipped when its length differs.
        sample_rate: sample rate the frame was analysed at.
        fft_size: analysis size; defaults to twice the frame length.
        settings: frequency/dB window, compression and smoothing.

    Returns:
        float32 array of shape (band_count,)
    """
    settings = settings or RenderConfig()
    band_count = max(0, int(band_count))
    db = np.asarray(db_frame, dtype=np.float64).ravel()
    bin_count = db.size
    if fft_size is None:
        fft_size = 2 * bin_count

    if band_count == 0:
        return np.zeros(0, dtype=np.float32)

    # Log-spaced centre frequency for every output band
    ratio = settings.max_freq_hz / settings.min_freq_hz
    band_freqs = settings.min_freq_hz * np.power(ratio, np.arange(band_count) / band_count)
    bins = np.floor(band_freqs * fft_size / sample_rate).astype(np.int64)

    # Bins past the frame, NaN and -inf all read as the dB floor
    values = np.full(band_count, settings.min_db, dtype=np.float64)
    in_range = (bins >= 0) & (bins < bin_count)
    if bin_count:
        values[in_range] = db[bins[in_range]]
    values = np.nan_to_num(values, nan=settings.min_db,
                           posinf=settings.max_db, neginf=settings.min_db)

    clamped = np.clip(values, settings.min_db, settings.max_db)
    scaled = (clamped - settings.min_db) / (settings.max_db - settings.min_db)
    compressed = np.power(scaled, settings.compression)

    if prev_frame is not None and len(prev_frame) == band_count:
        prev = np.nan_to_num(np.asarray(prev_frame, dtype=np.float64), nan=0.0)
        alpha = settings.smoothing
        compressed = alpha * prev + (1.0 - alpha) * compressed

    return np.clip(compressed, 0.0, 1.0).astype(np.float32)


class SpectralNormalizer:
    """Stateful normalizer that smooths each frame against its own last output."""

    def __init__(self, settings: Optional[RenderConfig] = None):
        self.settings = settings or RenderConfig()
        self._previous: Optional[np.ndarray] = None

    @property
    def band_count(self) -> int:
        return self.settings.band_count

    def normalize(self, db_frame, sample_rate: int = 44100,
                  fft_size: Optional[int] = None) -> np.ndarray:
        output = normalize_spectrum(
            db_frame,
            self.settings.band_count,
            prev_frame=self._previous,
            sample_rate=sample_rate,
            fft_size=fft_size,
            settings=self.settings,
        )
        self._previous = output
        return output.copy()

    def reset(self) -> None:
        self._previous = None
