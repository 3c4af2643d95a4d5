"""
tests/test_loader.py
=====================
Audio File Loader Tests

Test categories:
    1. WAV bytes and paths decode to 16 kHz mono float32 PCM
    2. Normalization of 16-bit samples to [-1, 1]
    3. Rejection of empty, missing and corrupt inputs
    4. Metadata and health check helpers

Fixtures are generated in memory with the wave module (no ffmpeg needed).
"""

import io
import os
import sys
import tempfile
import unittest
import wave

import numpy as np

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from voicequery.audio.loader import audio_info, check_audio, load_pcm
from voicequery.errors import AudioDecodeError


def _wav_bytes(samples: np.ndarray, sample_rate: int = 16000) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(samples.astype(np.int16).tobytes())
    return buf.getvalue()


# Half a second of a half-scale square wave.
_SQUARE = np.tile(np.array([16384, -16384], dtype=np.int16), 4000)


class TestLoadPcm(unittest.TestCase):

    def test_wav_bytes(self):
        pcm = load_pcm(_wav_bytes(_SQUARE), "clip.wav")

        self.assertEqual(pcm.dtype, np.float32)
        self.assertEqual(pcm.size, 8000)
        self.assertAlmostEqual(float(pcm.max()), 0.5, places=4)
        self.assertAlmostEqual(float(pcm.min()), -0.5, places=4)

    def test_wav_path(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "clip.wav")
            with open(path, "wb") as fh:
                fh.write(_wav_bytes(_SQUARE))
            pcm = load_pcm(path)
        self.assertEqual(pcm.size, 8000)

    def test_empty_bytes(self):
        with self.assertRaises(AudioDecodeError):
            load_pcm(b"", "clip.wav")

    def test_missing_file(self):
        with self.assertRaises(AudioDecodeError) as ctx:
            load_pcm("/nonexistent/clip.wav")
        self.assertIn("not found", str(ctx.exception))

    def test_corrupt_bytes(self):
        with self.assertRaises(AudioDecodeError):
            load_pcm(b"RIFF\x00\x00garbage", "clip.wav")


class TestHelpers(unittest.TestCase):

    def test_audio_info(self):
        data = _wav_bytes(_SQUARE)
        info = audio_info(data, "clip.wav")

        self.assertAlmostEqual(info.duration_seconds, 0.5, places=2)
        self.assertEqual(info.sample_rate, 16000)
        self.assertEqual(info.channels, 1)
        self.assertEqual(info.format, "wav")
        self.assertEqual(info.file_size, len(data))

    def test_check_audio(self):
        self.assertEqual(check_audio(_wav_bytes(_SQUARE), "clip.wav"), "OK")
        self.assertTrue(check_audio(b"", "clip.wav").startswith("Error: "))


if __name__ == "__main__":
    unittest.main()
