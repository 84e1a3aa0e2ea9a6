import unittest

import numpy as np

from peak_detector import find_peaks


class TestFindPeaks(unittest.TestCase):
    def test_unimodal_band_single_peak(self):
        band = [0, 10, 40, 90, 200, 120, 60, 5, 0]
        self.assertEqual(find_peaks(band, min_distance=3, threshold=100), [4])

    def test_oscillating_band_returns_every_maximum(self):
        band = [0, 200, 0, 200, 0, 200, 0, 200, 0]
        self.assertEqual(find_peaks(band, min_distance=0, threshold=100), [1, 3, 5, 7])

    def test_min_distance_is_greedy_from_left(self):
        band = [0, 200, 0, 200, 0, 200, 0, 200, 0]
        # 3 is only 2 bins after 1, 5 is 4 bins after 1
        self.assertEqual(find_peaks(band, min_distance=3, threshold=100), [1, 5])

    def test_spacing_equal_to_min_distance_is_accepted(self):
        band = [0, 200, 0, 200, 0]
        self.assertEqual(find_peaks(band, min_distance=2, threshold=100), [1, 3])

    def test_threshold_is_strict(self):
        band = [0, 100, 0, 101, 0]
        self.assertEqual(find_peaks(band, min_distance=0, threshold=100), [3])

    def test_plateau_is_not_a_peak(self):
        self.assertEqual(find_peaks([0, 200, 200, 0], min_distance=0, threshold=10), [])

    def test_flat_and_short_bands(self):
        self.assertEqual(find_peaks([50] * 10, min_distance=0, threshold=0), [])
        self.assertEqual(find_peaks([0, 200], min_distance=0, threshold=0), [])
        self.assertEqual(find_peaks([], min_distance=0, threshold=0), [])

    def test_edges_are_never_peaks(self):
        self.assertEqual(find_peaks([255, 0, 0, 0, 255], min_distance=0, threshold=0), [])

    def test_accepts_uint8_arrays(self):
        band = np.array([0, 250, 3, 4, 130, 0], dtype=np.uint8)
        self.assertEqual(find_peaks(band, min_distance=1, threshold=128), [1, 4])


if __name__ == "__main__":
    unittest.main()
