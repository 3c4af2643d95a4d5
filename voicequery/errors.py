"""
voicequery/errors.py
=====================
Error Taxonomy — VoiceQuery

Responsibility:
    - Define every failure a voice query invocation can surface
    - Carry enough diagnostic detail (URL, status code, raw body, budget,
      generated SQL) to fix a misconfigured setup without re-running it

All failures are terminal for the current invocation. Nothing in the core
retries; partial progress (e.g. a transcript obtained before a translation
failure) is discarded by the caller of these exceptions.
"""


class VoiceQueryError(Exception):
    """Base class for all VoiceQuery failures."""
    pass


class ConfigError(VoiceQueryError):
    """Raised when a configuration value or override is invalid."""
    pass


# =====================================================================
# Capture
# =====================================================================


class CaptureError(VoiceQueryError):
    """Base class for capture-session failures."""
    pass


class DeviceError(CaptureError):
    """Raised when the capture device is missing or cannot be opened."""
    pass


class AlreadyActiveError(CaptureError):
    """Raised when starting a capture while one is already running."""

    def __init__(self, message: str = "Already recording"):
        super().__init__(message)


class NotRecordingError(CaptureError):
    """Raised when stopping a capture that was never started."""

    def __init__(self, message: str = "Not recording"):
        super().__init__(message)


class EmptyCaptureError(CaptureError):
    """Raised when no usable audio or speech was captured."""

    def __init__(self, message: str = "No speech detected. Please try again."):
        super().__init__(message)


class AudioDecodeError(VoiceQueryError):
    """Raised when a pre-recorded audio file cannot be decoded."""
    pass


# =====================================================================
# Inference
# =====================================================================


class TranscriptionError(VoiceQueryError):
    """Base class for inference-boundary failures."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Transcription failed: {reason}")


class ModelUnavailable(TranscriptionError):
    """Raised when the speech model cannot be found or loaded."""
    pass


class UnsupportedOperation(TranscriptionError):
    """Raised when the model cannot perform the requested task."""
    pass


class InferenceError(TranscriptionError):
    """Raised when the inference engine itself fails."""
    pass


# =====================================================================
# Translation (text-to-SQL service)
# =====================================================================


class TranslationError(VoiceQueryError):
    """Base class for text-to-SQL service failures."""

    def __init__(self, message: str, url: str = ""):
        self.url = url
        super().__init__(message)


class TranslationTimeout(TranslationError):
    """Raised when the text-to-SQL request exceeds its own timeout."""

    def __init__(self, url: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Request timed out after {_format_seconds(timeout_seconds)} seconds",
            url,
        )


class ConnectionFailed(TranslationError):
    """Raised when the text-to-SQL service cannot be reached."""

    def __init__(self, url: str, detail: str = ""):
        self.detail = detail
        message = f"Cannot connect to text-to-sql proxy at {url}"
        if detail:
            message += f" ({detail})"
        super().__init__(message, url)


class NonSuccessStatus(TranslationError):
    """Raised when the text-to-SQL service answers with a non-2xx status."""

    def __init__(self, url: str, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        message = f"Text-to-SQL proxy error: HTTP {status_code}"
        if body:
            message += f" - {body}"
        super().__init__(message, url)


class MissingFieldError(TranslationError):
    """Raised when the service responded but the body holds no SQL."""

    def __init__(self, body: str, field: str = "sql", url: str = ""):
        self.body = body
        self.field = field
        super().__init__(
            f"Text-to-SQL proxy error: No {field.upper()} in response. Response: {body}",
            url,
        )


# =====================================================================
# Orchestration
# =====================================================================


class PipelineTimeout(VoiceQueryError):
    """Raised when the overall voice query budget elapses."""

    def __init__(self, budget_seconds: float):
        self.budget_seconds = budget_seconds
        super().__init__(
            f"Voice query timed out after {_format_seconds(budget_seconds)} seconds. "
            "Increase VOICE_QUERY_TIMEOUT if needed."
        )


class QueryPreparationError(VoiceQueryError):
    """Raised when the generated SQL fails to prepare against the engine."""

    def __init__(self, sql: str, reason: str):
        self.sql = sql
        self.reason = reason
        super().__init__(f"Generated SQL failed: {reason}\nSQL: {sql}")


def _format_seconds(value: float) -> str:
    """Render 30.0 as '30' and 0.25 as '0.25'."""
    return f"{value:g}"
