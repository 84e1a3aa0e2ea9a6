import unittest

from beat_gate import BeatGate, BeatHistory


class TestBeatHistory(unittest.TestCase):
    def test_overflow_drops_oldest(self):
        history = BeatHistory(capacity=4)
        for t in (100.0, 200.0, 300.0, 400.0, 500.0):
            history.append(t)

        self.assertEqual(len(history), 4)
        self.assertEqual(history.as_list(), [200.0, 300.0, 400.0, 500.0])
        self.assertEqual(history.last, 500.0)

    def test_rejects_non_increasing(self):
        history = BeatHistory(capacity=4)
        history.append(100.0)
        with self.assertRaises(ValueError):
            history.append(100.0)
        with self.assertRaises(ValueError):
            history.append(50.0)
        self.assertEqual(history.as_list(), [100.0])

    def test_recent_and_clear(self):
        history = BeatHistory(capacity=10)
        for t in range(1, 8):
            history.append(float(t))
        self.assertEqual(history.recent(3), [5.0, 6.0, 7.0])
        self.assertEqual(history.recent(0), [])
        history.clear()
        self.assertEqual(len(history), 0)
        self.assertIsNone(history.last)

    def test_invalid_capacity(self):
        with self.assertRaises(ValueError):
            BeatHistory(capacity=0)


class TestBeatGate(unittest.TestCase):
    def test_first_peak_frame_is_accepted(self):
        gate = BeatGate(capacity=10)
        event = gate.on_frame([4], now_ms=1000.0, min_peak_distance_ms=350.0)

        self.assertIsNotNone(event)
        self.assertEqual(event.timestamp_ms, 1000.0)
        self.assertEqual(event.beat_count, 1)
        self.assertEqual(gate.history.as_list(), [1000.0])

    def test_no_peaks_is_noop(self):
        gate = BeatGate(capacity=10)
        self.assertIsNone(gate.on_frame([], now_ms=1000.0, min_peak_distance_ms=350.0))
        self.assertEqual(len(gate.history), 0)
        self.assertEqual(gate.beat_count, 0)

    def test_debounce_window(self):
        gate = BeatGate(capacity=10)
        gate.on_frame([4], 1000.0, 350.0)

        self.assertIsNone(gate.on_frame([4, 9], 1200.0, 350.0))
        # Exactly the window is still rejected
        self.assertIsNone(gate.on_frame([4], 1350.0, 350.0))
        self.assertIsNotNone(gate.on_frame([4], 1351.0, 350.0))
        self.assertEqual(gate.history.as_list(), [1000.0, 1351.0])

    def test_flash_window(self):
        gate = BeatGate(capacity=10, flash_ms=100.0)
        self.assertFalse(gate.is_flashing(0.0))
        gate.on_frame([1], 500.0, 350.0)
        self.assertTrue(gate.is_flashing(500.0))
        self.assertTrue(gate.is_flashing(599.0))
        self.assertFalse(gate.is_flashing(600.0))

    def test_reset_keeps_beat_count(self):
        gate = BeatGate(capacity=10)
        gate.on_frame([1], 0.0, 350.0)
        gate.on_frame([1], 500.0, 350.0)
        gate.reset()

        self.assertEqual(len(gate.history), 0)
        self.assertIsNone(gate.last_beat_ms)
        self.assertEqual(gate.beat_count, 2)

        event = gate.on_frame([1], 10.0, 350.0)
        self.assertEqual(event.beat_count, 3)


if __name__ == "__main__":
    unittest.main()
