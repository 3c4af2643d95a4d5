"""
tests/test_config.py
=====================
Configuration Tests

Test categories:
    1. Defaults when no environment variables are set
    2. Environment overrides and malformed values
    3. Per-invocation overrides layered over defaults
    4. Validation failures
"""

import os
import sys
import unittest
from dataclasses import FrozenInstanceError
from unittest.mock import patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from voicequery.config import (
    PipelineRequest,
    VoiceQueryConfig,
    load_defaults,
    resolve_config,
    validate,
)
from voicequery.errors import ConfigError

_ENV_KEYS = (
    "WHISPER_MODEL", "WHISPER_MODEL_PATH", "WHISPER_LANGUAGE", "WHISPER_TRANSLATE",
    "WHISPER_THREADS", "WHISPER_DEVICE_ID", "WHISPER_MAX_DURATION",
    "WHISPER_SILENCE_DURATION", "WHISPER_SILENCE_THRESHOLD", "WHISPER_USE_GPU",
    "INFERENCE_BACKEND", "TEXT_TO_SQL_URL", "TEXT_TO_SQL_TIMEOUT",
    "TEXT_TO_SQL_CONNECT_TIMEOUT", "VOICE_QUERY_TIMEOUT", "VOICE_QUERY_SHOW_SQL",
    "WHISPER_VERBOSE", "VOICEQUERY_DATABASE",
)


def _clean_env(**values):
    env = {k: v for k, v in os.environ.items() if k not in _ENV_KEYS}
    env.update(values)
    return patch.dict(os.environ, env, clear=True)


class TestDefaults(unittest.TestCase):

    def test_builtin_defaults(self):
        with _clean_env():
            config = load_defaults()

        self.assertEqual(config.model, "base.en")
        self.assertEqual(config.language, "auto")
        self.assertTrue(config.auto_language)
        self.assertFalse(config.translate)
        self.assertEqual(config.threads, 0)
        self.assertEqual(config.device_id, -1)
        self.assertIsNone(config.capture_device)
        self.assertEqual(config.max_duration, 15.0)
        self.assertEqual(config.silence_duration, 1.0)
        self.assertEqual(config.silence_threshold, 0.001)
        self.assertEqual(config.text_to_sql_url, "http://localhost:4000/generate-sql")
        self.assertEqual(config.text_to_sql_timeout, 15.0)
        self.assertEqual(config.text_to_sql_connect_timeout, 3.0)
        self.assertEqual(config.voice_query_timeout, 30.0)
        self.assertFalse(config.voice_query_show_sql)
        self.assertFalse(config.verbose)
        self.assertEqual(config.inference_backend, "local")

    def test_environment_overrides(self):
        with _clean_env(
            WHISPER_MODEL="small",
            WHISPER_LANGUAGE=" DE ",
            WHISPER_TRANSLATE="yes",
            WHISPER_DEVICE_ID="2",
            VOICE_QUERY_TIMEOUT="12.5",
            WHISPER_VERBOSE="1",
            INFERENCE_BACKEND="OpenAI",
        ):
            config = load_defaults()

        self.assertEqual(config.model, "small")
        self.assertEqual(config.language, "de")
        self.assertTrue(config.translate)
        self.assertEqual(config.capture_device, 2)
        self.assertEqual(config.voice_query_timeout, 12.5)
        self.assertTrue(config.verbose)
        self.assertEqual(config.inference_backend, "openai")

    def test_malformed_number(self):
        with _clean_env(WHISPER_THREADS="four"):
            with self.assertRaises(ConfigError) as ctx:
                load_defaults()
        self.assertIn("WHISPER_THREADS", str(ctx.exception))

    def test_unknown_backend(self):
        with _clean_env(INFERENCE_BACKEND="carrier-pigeon"):
            with self.assertRaises(ConfigError):
                load_defaults()

    def test_non_finite_environment_values(self):
        for name, raw in (
            ("VOICE_QUERY_TIMEOUT", "inf"),
            ("WHISPER_MAX_DURATION", "nan"),
            ("TEXT_TO_SQL_TIMEOUT", "Infinity"),
        ):
            with _clean_env(**{name: raw}):
                with self.assertRaises(ConfigError):
                    load_defaults()


class TestResolve(unittest.TestCase):

    def setUp(self):
        self.defaults = VoiceQueryConfig()

    def test_no_request_returns_defaults(self):
        self.assertIs(resolve_config(None, self.defaults), self.defaults)

    def test_only_set_fields_override(self):
        config = resolve_config(
            PipelineRequest(model="tiny", max_duration=5.0, language="FR"),
            self.defaults,
        )
        self.assertEqual(config.model, "tiny")
        self.assertEqual(config.max_duration, 5.0)
        self.assertEqual(config.language, "fr")
        self.assertEqual(config.silence_duration, self.defaults.silence_duration)
        self.assertEqual(self.defaults.model, "base.en")

    def test_false_is_an_override(self):
        defaults = VoiceQueryConfig(translate=True, model="small")
        config = resolve_config(PipelineRequest(translate=False), defaults)
        self.assertFalse(config.translate)

    def test_config_is_frozen(self):
        with self.assertRaises(FrozenInstanceError):
            self.defaults.model = "tiny"

    def test_invalid_override(self):
        for request in (
            PipelineRequest(max_duration=0),
            PipelineRequest(silence_duration=-1.0),
            PipelineRequest(silence_threshold=1.5),
            PipelineRequest(model=""),
        ):
            with self.assertRaises(ConfigError):
                resolve_config(request, self.defaults)

    def test_non_finite_override(self):
        for request in (
            PipelineRequest(max_duration=float("nan")),
            PipelineRequest(max_duration=float("inf")),
            PipelineRequest(silence_duration=float("inf")),
            PipelineRequest(silence_threshold=float("nan")),
        ):
            with self.assertRaises(ConfigError) as ctx:
                resolve_config(request, self.defaults)
            self.assertIn("finite", str(ctx.exception))

    def test_validate_timeouts(self):
        with self.assertRaises(ConfigError):
            validate(VoiceQueryConfig(voice_query_timeout=0))
        with self.assertRaises(ConfigError):
            validate(VoiceQueryConfig(voice_query_timeout=float("inf")))
        with self.assertRaises(ConfigError):
            validate(VoiceQueryConfig(text_to_sql_connect_timeout=float("nan")))


if __name__ == "__main__":
    unittest.main()
