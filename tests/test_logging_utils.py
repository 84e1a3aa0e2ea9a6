import unittest
from unittest import mock

import numpy as np

import logging_utils
from logging_utils import get_log_level, log_event, log_throttled, reset_throttle, set_log_level


class TestLogEvent(unittest.TestCase):
    def test_fields_are_appended(self):
        with self.assertLogs("beatglow", level="INFO") as logs:
            log_event("INFO", "Session", "Started", fps=60, gain=np.float64(1.25))
        self.assertEqual(logs.output, ["INFO:beatglow:Started | fps=60 gain=1.25"])

    def test_arrays_log_their_shape(self):
        with self.assertLogs("beatglow", level="INFO") as logs:
            log_event("INFO", "Capture", "Frame", data=np.zeros((4, 2)))
        self.assertIn("data=ndarray(4, 2)", logs.output[0])

    def test_warn_alias(self):
        with self.assertLogs("beatglow", level="WARNING") as logs:
            log_event("warn", "Config", "Odd value")
        self.assertTrue(logs.output[0].startswith("WARNING:"))

    def test_tag_is_attached(self):
        with self.assertLogs("beatglow", level="INFO") as logs:
            log_event("INFO", "Beat", "Accepted")
        self.assertEqual(logs.records[0].tag, "Beat")

    def test_set_and_get_level(self):
        previous = get_log_level()
        try:
            set_log_level("debug")
            self.assertEqual(get_log_level(), "DEBUG")
            set_log_level("nonsense")
            self.assertEqual(get_log_level(), "INFO")
        finally:
            set_log_level(previous)


class TestLogThrottled(unittest.TestCase):
    def setUp(self):
        reset_throttle()

    def tearDown(self):
        reset_throttle()

    def test_repeats_inside_interval_are_dropped(self):
        times = iter([10.0, 10.2, 10.4, 11.5])
        with mock.patch.object(logging_utils.time, "monotonic", side_effect=lambda: next(times)):
            with self.assertLogs("beatglow", level="WARNING") as logs:
                emitted = [
                    log_throttled("status", 1.0, "WARNING", "Capture", "Stream status")
                    for _ in range(4)
                ]

        self.assertEqual(emitted, [True, False, False, True])
        self.assertEqual(len(logs.output), 2)
        self.assertIn("suppressed=2", logs.output[1])

    def test_keys_are_independent(self):
        with self.assertLogs("beatglow", level="ERROR") as logs:
            self.assertTrue(log_throttled("a", 60.0, "ERROR", "Session", "first"))
            self.assertTrue(log_throttled("b", 60.0, "ERROR", "Session", "second"))
            self.assertFalse(log_throttled("a", 60.0, "ERROR", "Session", "first"))
        self.assertEqual(len(logs.output), 2)


if __name__ == "__main__":
    unittest.main()
