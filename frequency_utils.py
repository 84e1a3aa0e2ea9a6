import math


def frequency_to_bin(frequency_hz: float, sample_rate: int, fft_size: int) -> int:
    """Index of the FFT bin containing ``frequency_hz``."""
    if sample_rate <= 0:
        return 0
    return int(math.floor(frequency_hz * fft_size / sample_rate))


def band_bin_range(
    freq_low: float,
    freq_high: float,
    sample_rate: int,
    fft_size: int,
    bin_count: int | None = None,
) -> tuple[int, int]:
    """Half-open [low_bin, high_bin) slice covering a Hz range of the spectrum."""
    if bin_count is None:
        bin_count = fft_size // 2
    low_bin = max(0, frequency_to_bin(freq_low, sample_rate, fft_size))
    high_bin = min(bin_count, frequency_to_bin(freq_high, sample_rate, fft_size))
    if high_bin < low_bin:
        return low_bin, low_bin
    return low_bin, high_bin


def ms_to_bin_distance(distance_ms: float, sample_rate: int, fft_size: int) -> int:
    """Convert a millisecond spacing into a bin-space spacing.

    One analysis window of ``fft_size`` samples counts as one bin, so 350 ms
    at 44.1 kHz with a 2048-point window gives 7.
    """
    if distance_ms <= 0 or sample_rate <= 0 or fft_size <= 0:
        return 0
    return int(math.floor(distance_ms / 1000.0 * sample_rate / fft_size))
