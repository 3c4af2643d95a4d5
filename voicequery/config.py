"""
voicequery/config.py
=====================
Effective Configuration — VoiceQuery

Responsibility:
    - Read process-wide defaults from the environment (.env supported)
    - Layer per-invocation caller overrides on top of those defaults
    - Validate the result once and hand back an immutable config

An effective configuration is resolved once per invocation and never
mutated afterwards; every stage of the pipeline reads the same frozen copy.
"""

import logging
import math
import os
from dataclasses import dataclass, fields, replace
from typing import Optional

from dotenv import load_dotenv

from voicequery.errors import ConfigError

load_dotenv()

logger = logging.getLogger("voicequery.config")


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_MODEL = "base.en"
DEFAULT_MODEL_PATH = os.path.join(os.path.expanduser("~"), ".voicequery", "models")
DEFAULT_LANGUAGE = "auto"
DEFAULT_MAX_DURATION = 15.0
DEFAULT_SILENCE_DURATION = 1.0
DEFAULT_SILENCE_THRESHOLD = 0.001
DEFAULT_TEXT_TO_SQL_URL = "http://localhost:4000/generate-sql"
DEFAULT_TEXT_TO_SQL_TIMEOUT = 15.0
DEFAULT_TEXT_TO_SQL_CONNECT_TIMEOUT = 3.0
DEFAULT_VOICE_QUERY_TIMEOUT = 30.0

INFERENCE_BACKENDS = ("local", "openai")

_TRUTHY = ("true", "1", "yes", "on")


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VoiceQueryConfig:
    """Resolved settings for one voice query invocation."""

    model: str = DEFAULT_MODEL
    model_path: str = DEFAULT_MODEL_PATH
    language: str = DEFAULT_LANGUAGE
    translate: bool = False
    threads: int = 0
    device_id: int = -1
    max_duration: float = DEFAULT_MAX_DURATION
    silence_duration: float = DEFAULT_SILENCE_DURATION
    silence_threshold: float = DEFAULT_SILENCE_THRESHOLD
    use_gpu: bool = False
    inference_backend: str = "local"
    text_to_sql_url: str = DEFAULT_TEXT_TO_SQL_URL
    text_to_sql_timeout: float = DEFAULT_TEXT_TO_SQL_TIMEOUT
    text_to_sql_connect_timeout: float = DEFAULT_TEXT_TO_SQL_CONNECT_TIMEOUT
    voice_query_timeout: float = DEFAULT_VOICE_QUERY_TIMEOUT
    voice_query_show_sql: bool = False
    verbose: bool = False
    database: str = ":memory:"

    @property
    def capture_device(self) -> Optional[int]:
        """Device index for the capture backend, None for the system default."""
        return self.device_id if self.device_id >= 0 else None

    @property
    def auto_language(self) -> bool:
        return self.language in ("", "auto")


@dataclass(frozen=True)
class PipelineRequest:
    """
    Caller-supplied overrides for a single invocation.

    Every field left as None falls through to the process defaults.
    """

    model: Optional[str] = None
    language: Optional[str] = None
    translate: Optional[bool] = None
    device_id: Optional[int] = None
    max_duration: Optional[float] = None
    silence_duration: Optional[float] = None
    silence_threshold: Optional[float] = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_defaults() -> VoiceQueryConfig:
    """
    Build the process-wide defaults from environment variables.

    Raises:
        ConfigError: If a variable holds a malformed number or the result
                     fails validation.
    """
    config = VoiceQueryConfig(
        model=os.environ.get("WHISPER_MODEL", DEFAULT_MODEL),
        model_path=os.path.expanduser(
            os.environ.get("WHISPER_MODEL_PATH", DEFAULT_MODEL_PATH)
        ),
        language=os.environ.get("WHISPER_LANGUAGE", DEFAULT_LANGUAGE).strip().lower(),
        translate=_env_bool("WHISPER_TRANSLATE", False),
        threads=_env_int("WHISPER_THREADS", 0),
        device_id=_env_int("WHISPER_DEVICE_ID", -1),
        max_duration=_env_float("WHISPER_MAX_DURATION", DEFAULT_MAX_DURATION),
        silence_duration=_env_float("WHISPER_SILENCE_DURATION", DEFAULT_SILENCE_DURATION),
        silence_threshold=_env_float("WHISPER_SILENCE_THRESHOLD", DEFAULT_SILENCE_THRESHOLD),
        use_gpu=_env_bool("WHISPER_USE_GPU", False),
        inference_backend=os.environ.get("INFERENCE_BACKEND", "local").strip().lower(),
        text_to_sql_url=os.environ.get("TEXT_TO_SQL_URL", DEFAULT_TEXT_TO_SQL_URL),
        text_to_sql_timeout=_env_float("TEXT_TO_SQL_TIMEOUT", DEFAULT_TEXT_TO_SQL_TIMEOUT),
        text_to_sql_connect_timeout=_env_float(
            "TEXT_TO_SQL_CONNECT_TIMEOUT", DEFAULT_TEXT_TO_SQL_CONNECT_TIMEOUT
        ),
        voice_query_timeout=_env_float("VOICE_QUERY_TIMEOUT", DEFAULT_VOICE_QUERY_TIMEOUT),
        voice_query_show_sql=_env_bool("VOICE_QUERY_SHOW_SQL", False),
        verbose=_env_bool("WHISPER_VERBOSE", False),
        database=os.environ.get("VOICEQUERY_DATABASE", ":memory:"),
    )
    validate(config)
    return config


def resolve_config(
    request: Optional[PipelineRequest],
    defaults: VoiceQueryConfig,
) -> VoiceQueryConfig:
    """
    Layer the non-None fields of ``request`` over ``defaults``.

    Args:
        request:  Caller overrides, or None to use the defaults as-is.
        defaults: Process-wide configuration.

    Returns:
        A new frozen VoiceQueryConfig.

    Raises:
        ConfigError: If the merged configuration is invalid.
    """
    if request is None:
        return defaults

    overrides = {
        f.name: getattr(request, f.name)
        for f in fields(request)
        if getattr(request, f.name) is not None
    }
    if "language" in overrides:
        overrides["language"] = overrides["language"].strip().lower()

    config = replace(defaults, **overrides)
    validate(config)

    if overrides:
        logger.debug("Resolved config with overrides: %s", sorted(overrides))
    return config


_FINITE_FIELDS = (
    "max_duration",
    "silence_duration",
    "silence_threshold",
    "text_to_sql_timeout",
    "text_to_sql_connect_timeout",
    "voice_query_timeout",
)


def validate(config: VoiceQueryConfig) -> None:
    """
    Check value ranges of an effective configuration.

    Raises:
        ConfigError: On the first invalid value.
    """
    if not config.model:
        raise ConfigError("Model name must not be empty.")
    for name in _FINITE_FIELDS:
        if not math.isfinite(getattr(config, name)):
            raise ConfigError(
                f"{name} must be a finite number, got {getattr(config, name)}"
            )
    if config.max_duration <= 0:
        raise ConfigError(f"max_duration must be positive, got {config.max_duration}")
    if config.silence_duration <= 0:
        raise ConfigError(
            f"silence_duration must be positive, got {config.silence_duration}"
        )
    if not 0.0 <= config.silence_threshold <= 1.0:
        raise ConfigError(
            f"silence_threshold must be within [0, 1], got {config.silence_threshold}"
        )
    if config.threads < 0:
        raise ConfigError(f"threads must be >= 0, got {config.threads}")
    if config.inference_backend not in INFERENCE_BACKENDS:
        raise ConfigError(
            f"Unknown inference backend '{config.inference_backend}'. "
            f"Allowed: {', '.join(INFERENCE_BACKENDS)}"
        )
    for name in ("text_to_sql_timeout", "text_to_sql_connect_timeout", "voice_query_timeout"):
        if getattr(config, name) <= 0:
            raise ConfigError(f"{name} must be positive, got {getattr(config, name)}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got '{raw}'") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got '{raw}'") from exc
