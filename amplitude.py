"""
beatglow - Amplitude conditioning
Turns one magnitude frame into a loudness reading with gain, soft clipping
and an overload flag.
"""

from dataclasses import dataclass

import numpy as np

from config import AudioParameters

SOFT_CLIP_AMOUNT = 0.9


def soft_clip(value: float, amount: float = SOFT_CLIP_AMOUNT) -> float:
    """tanh compression so the displayed level stays inside (-1, 1)."""
    return float(np.tanh(value * amount))


@dataclass(frozen=True)
class AmplitudeReading:
    """Loudness state for one frame"""
    raw_volume: float         # Mean normalized magnitude before gain (0-1)
    amplified_volume: float   # raw_volume * gain, unbounded
    loudness: float           # Soft-clipped amplified volume for display
    is_clipping: bool         # Amplified volume overran unity

    @classmethod
    def silent(cls) -> "AmplitudeReading":
        return cls(raw_volume=0.0, amplified_volume=0.0, loudness=0.0, is_clipping=False)


class AmplitudeProcessor:
    """Computes overall loudness from a magnitude frame."""

    def __init__(self, magnitude_ceiling: float = 256.0):
        self.magnitude_ceiling = float(magnitude_ceiling)

    def process(self, frame, params: AudioParameters) -> AmplitudeReading:
        magnitudes = np.asarray(frame, dtype=np.float64)
        if magnitudes.size == 0:
            return AmplitudeReading.silent()

        raw_volume = float(np.mean(magnitudes)) / self.magnitude_ceiling
        amplified = raw_volume * params.gain_value
        # Clipping is judged before the soft clip, which never reaches 1
        return AmplitudeReading(
            raw_volume=raw_volume,
            amplified_volume=amplified,
            loudness=soft_clip(amplified),
            is_clipping=amplified > 1.0,
        )
