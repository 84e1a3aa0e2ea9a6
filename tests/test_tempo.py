import unittest

import numpy as np

from beat_gate import BeatHistory
from tempo import NO_ESTIMATE, TempoEstimator, estimate_tempo, fold_octaves


class TestEstimateTempo(unittest.TestCase):
    def test_steady_120(self):
        estimate = estimate_tempo([0, 500, 1000, 1500])
        self.assertEqual(estimate.raw_bpm, 120)
        self.assertEqual(estimate.bpm, 120)
        self.assertAlmostEqual(estimate.avg_interval_ms, 500.0, places=6)

    def test_half_beats_are_folded_down(self):
        estimate = estimate_tempo([0, 250, 500, 750, 1000])
        self.assertEqual(estimate.raw_bpm, 240)
        self.assertEqual(estimate.bpm, 120)

    def test_slow_beats_are_folded_up(self):
        estimate = estimate_tempo([0, 2000, 4000])
        self.assertEqual(estimate.raw_bpm, 30)
        self.assertEqual(estimate.bpm, 60)

    def test_fewer_than_two_beats_is_no_estimate(self):
        self.assertEqual(estimate_tempo([]), NO_ESTIMATE)
        self.assertEqual(estimate_tempo([1234.0]), NO_ESTIMATE)
        self.assertFalse(NO_ESTIMATE.is_valid)
        self.assertEqual(NO_ESTIMATE.bpm, 0)

    def test_zero_interval_is_no_estimate(self):
        self.assertEqual(estimate_tempo([100.0, 100.0]), NO_ESTIMATE)

    def test_very_long_gap_still_lands_in_range(self):
        estimate = estimate_tempo([0.0, 1_000_000.0])
        self.assertGreaterEqual(estimate.bpm, 60)
        self.assertLessEqual(estimate.bpm, 180)
        self.assertGreater(estimate.raw_bpm, 0)

    def test_bpm_always_in_range_for_increasing_sequences(self):
        rng = np.random.default_rng(1234)
        for _ in range(500):
            count = int(rng.integers(2, 21))
            gaps = rng.uniform(1.0, 5000.0, size=count - 1)
            times = np.concatenate([[0.0], np.cumsum(gaps)])
            estimate = estimate_tempo(times)
            self.assertGreaterEqual(estimate.bpm, 60)
            self.assertLessEqual(estimate.bpm, 180)

    def test_fold_octaves(self):
        self.assertEqual(fold_octaves(361), 90.25)
        self.assertEqual(fold_octaves(180), 180)
        self.assertEqual(fold_octaves(59), 118)
        self.assertEqual(fold_octaves(0), 0.0)


class TestTempoEstimator(unittest.TestCase):
    def test_estimate_from_history_and_reset(self):
        history = BeatHistory(capacity=10)
        for t in (0.0, 500.0, 1000.0, 1500.0):
            history.append(t)

        estimator = TempoEstimator()
        estimate = estimator.estimate(history)
        self.assertEqual(estimate.bpm, 120)
        self.assertIs(estimator.current, estimate)

        estimator.reset()
        self.assertEqual(estimator.current, NO_ESTIMATE)

    def test_estimate_is_recomputed_from_raw_each_call(self):
        history = BeatHistory(capacity=10)
        for t in (0.0, 250.0, 500.0):
            history.append(t)
        estimator = TempoEstimator()
        first = estimator.estimate(history)
        second = estimator.estimate(history)
        self.assertEqual(first, second)
        self.assertEqual(second.bpm, 120)


if __name__ == "__main__":
    unittest.main()
