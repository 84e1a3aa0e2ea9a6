def find_peaks(band, min_distance: int, threshold: float) -> list[int]:
    """Find local maxima in a spectrum sub-band.

    A bin is a peak when it is strictly above both neighbours and strictly
    above ``threshold``. Peaks are taken greedily left to right; a candidate
    closer than ``min_distance`` bins to the last accepted peak is skipped.

    Args:
        band: non-negative magnitudes, already sliced to the range of interest.
        min_distance: minimum spacing between accepted peaks, in bins.
        threshold: value a peak must exceed, in the same units as ``band``.

    Returns:
        Ascending list of bin indices relative to the start of ``band``.
    """
    values = [float(v) for v in band]
    peaks: list[int] = []
    for i in range(1, len(values) - 1):
        current = values[i]
        if current > values[i - 1] and current > values[i + 1] and current > threshold:
            if not peaks or (i - peaks[-1]) >= min_distance:
                peaks.append(i)
    return peaks
