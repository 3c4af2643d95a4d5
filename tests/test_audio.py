"""
tests/test_audio.py
====================
Audio Tests — amplitude estimation and silence endpointing

Test categories:
    1. RMS / peak of silence, constant and empty chunks
    2. Mic level diagnostic rendering
    3. Endpointing on an utterance trace (never early)
    4. All-quiet traces are bounded only by max_duration
    5. Loud frames reset a running silence timer

All tests are offline and deterministic.
"""

import math
import os
import sys
import unittest

import numpy as np

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from voicequery.audio.amplitude import MicLevel, measure_level, peak, rms
from voicequery.audio.endpointing import Endpointer, EndpointingState, StopReason

POLL = 0.05
LOUD = 0.2
QUIET = 0.0005
THRESHOLD = 0.001


def _run_trace(endpointer, trace):
    """Feed amplitudes one poll at a time; return (poll_number, reason)."""
    for index, amplitude in enumerate(trace, start=1):
        reason = endpointer.update(amplitude, index * POLL)
        if reason is not None:
            return index, reason
    return None, None


# ===================================================================
# Amplitude
# ===================================================================


class TestRms(unittest.TestCase):

    def test_silence_is_zero(self):
        self.assertEqual(rms(np.zeros(1024, dtype=np.float32)), 0.0)

    def test_constant_amplitude(self):
        for k in (0.25, -0.25, 1.0, -1.0):
            self.assertAlmostEqual(rms(np.full(512, k, dtype=np.float32)), abs(k), places=6)

    def test_empty_chunk_is_zero(self):
        self.assertEqual(rms([]), 0.0)
        self.assertEqual(rms(np.zeros(0, dtype=np.float32)), 0.0)

    def test_mixed_signal(self):
        self.assertAlmostEqual(rms([3.0 / 5, -4.0 / 5]), math.sqrt(0.5), places=6)

    def test_peak(self):
        self.assertAlmostEqual(peak([0.1, -0.7, 0.3]), 0.7, places=6)
        self.assertEqual(peak([]), 0.0)


class TestMicLevel(unittest.TestCase):

    def test_suggested_threshold_is_half_rms(self):
        level = measure_level(np.full(1600, 0.5, dtype=np.float32))
        self.assertAlmostEqual(level.peak, 0.5, places=6)
        self.assertAlmostEqual(level.rms, 0.5, places=6)
        self.assertAlmostEqual(level.suggested_threshold, 0.25, places=6)
        self.assertTrue(level.has_audio)

    def test_render(self):
        level = MicLevel(peak=0.5, rms=0.1, suggested_threshold=0.05, sample_count=10)
        self.assertEqual(
            str(level),
            "Peak: 0.500000, RMS: 0.100000 (suggested threshold: 0.050000)",
        )

    def test_no_audio(self):
        level = measure_level([])
        self.assertFalse(level.has_audio)
        self.assertEqual(str(level), "No audio captured")
        self.assertEqual(level.to_dict()["summary"], "No audio captured")


# ===================================================================
# Endpointing
# ===================================================================


class TestEndpointing(unittest.TestCase):

    def test_endpoints_around_poll_30(self):
        endpointer = Endpointer(THRESHOLD, silence_duration=0.5, max_duration=30.0)
        poll, reason = _run_trace(endpointer, [LOUD] * 20 + [QUIET] * 40)

        self.assertEqual(reason, StopReason.ENDPOINTED)
        self.assertGreaterEqual(poll, 30)
        self.assertLessEqual(poll, 32)
        self.assertEqual(endpointer.state, EndpointingState.ENDPOINTED)

    def test_never_endpoints_before_half_second_of_silence(self):
        endpointer = Endpointer(THRESHOLD, silence_duration=0.5, max_duration=30.0)
        for index, amplitude in enumerate([LOUD] * 20 + [QUIET] * 9, start=1):
            self.assertIsNone(endpointer.update(amplitude, index * POLL))
        self.assertEqual(endpointer.state, EndpointingState.SILENCE_TIMER)

    def test_all_quiet_trace_never_endpoints(self):
        endpointer = Endpointer(THRESHOLD, silence_duration=0.5, max_duration=1000.0)
        poll, reason = _run_trace(endpointer, [QUIET] * 5000)

        self.assertIsNone(reason)
        self.assertFalse(endpointer.had_sound)
        self.assertEqual(endpointer.state, EndpointingState.NOT_STARTED)

    def test_all_quiet_trace_bounded_by_max_duration(self):
        endpointer = Endpointer(THRESHOLD, silence_duration=0.5, max_duration=2.0)
        poll, reason = _run_trace(endpointer, [QUIET] * 1000)

        self.assertEqual(reason, StopReason.MAX_DURATION)
        self.assertGreaterEqual(poll * POLL, 2.0 - 1e-9)
        self.assertLessEqual(poll, 41)

    def test_loud_frame_resets_silence_timer(self):
        endpointer = Endpointer(THRESHOLD, silence_duration=0.5, max_duration=30.0)
        trace = [LOUD] * 5 + [QUIET] * 8 + [LOUD] + [QUIET] * 40
        poll, reason = _run_trace(endpointer, trace)

        self.assertEqual(reason, StopReason.ENDPOINTED)
        # Timer restarts after the loud frame at poll 14.
        self.assertGreaterEqual(poll, 14 + 10)

    def test_max_duration_wins_over_speech(self):
        endpointer = Endpointer(THRESHOLD, silence_duration=0.5, max_duration=1.0)
        poll, reason = _run_trace(endpointer, [LOUD] * 100)
        self.assertEqual(reason, StopReason.MAX_DURATION)
        self.assertLessEqual(poll, 21)

    def test_threshold_is_exclusive(self):
        endpointer = Endpointer(THRESHOLD, silence_duration=0.5, max_duration=30.0)
        endpointer.update(THRESHOLD, POLL)
        self.assertFalse(endpointer.had_sound)


if __name__ == "__main__":
    unittest.main()
