"""
voicequery/api/routes.py
=========================
HTTP Endpoints — VoiceQuery

Responsibility:
    - Expose the voice query pipeline over HTTP (FastAPI)
    - Turn query parameters into a PipelineRequest of caller overrides
    - Run every blocking pipeline call in a worker thread
    - Map the error taxonomy onto HTTP status codes

Status mapping:
    ConfigError, lifecycle misuse, empty capture,
    undecodable upload, unsupported operation       → 422
    DeviceError, ModelUnavailable                    → 503
    Text-to-SQL transport / response failures        → 502
    PipelineTimeout                                  → 504
    QueryPreparationError                            → 400
    Anything else                                    → 500
"""

import asyncio
import logging
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from voicequery.config import PipelineRequest
from voicequery.errors import (
    AlreadyActiveError,
    AudioDecodeError,
    ConfigError,
    DeviceError,
    EmptyCaptureError,
    ModelUnavailable,
    NotRecordingError,
    PipelineTimeout,
    QueryPreparationError,
    TranslationError,
    UnsupportedOperation,
    VoiceQueryError,
)
from voicequery.pipeline import VoiceQueryPipeline

logger = logging.getLogger("voicequery.api")

_pipeline: Optional[VoiceQueryPipeline] = None


def get_pipeline() -> VoiceQueryPipeline:
    """Process-wide pipeline, built on first use from the environment."""
    global _pipeline
    if _pipeline is None:
        _pipeline = VoiceQueryPipeline()
    return _pipeline


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="VoiceQuery",
    description="Speak a question, get SQL (and its result) back.",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

_STATUS_BY_ERROR = (
    (PipelineTimeout, 504),
    (QueryPreparationError, 400),
    (TranslationError, 502),
    (DeviceError, 503),
    (ModelUnavailable, 503),
    (EmptyCaptureError, 422),
    (AlreadyActiveError, 422),
    (NotRecordingError, 422),
    (UnsupportedOperation, 422),
    (AudioDecodeError, 422),
    (ConfigError, 422),
)


def status_for(exc: Exception) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


@app.exception_handler(VoiceQueryError)
async def voice_query_error_handler(request, exc: VoiceQueryError):
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)

    content = {"error": type(exc).__name__, "detail": str(exc)}
    sql = getattr(exc, "sql", None)
    if sql:
        content["sql"] = sql
    return JSONResponse(status_code=status, content=content)


def _request(
    model: Optional[str] = None,
    language: Optional[str] = None,
    translate: Optional[bool] = None,
    device_id: Optional[int] = None,
    max_duration: Optional[float] = None,
    silence_duration: Optional[float] = None,
    silence_threshold: Optional[float] = None,
) -> PipelineRequest:
    return PipelineRequest(
        model=model,
        language=language,
        translate=translate,
        device_id=device_id,
        max_duration=max_duration,
        silence_duration=silence_duration,
        silence_threshold=silence_threshold,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/v1/devices")
async def devices(pipeline: VoiceQueryPipeline = Depends(get_pipeline)):
    found = await asyncio.to_thread(pipeline.list_devices)
    return {"devices": [d.to_dict() for d in found]}


@app.get("/api/v1/models")
async def models(pipeline: VoiceQueryPipeline = Depends(get_pipeline)):
    return {"models": [m.to_dict() for m in pipeline.list_models()]}


@app.get("/api/v1/mic-level")
async def mic_level(
    duration: float = 1.0,
    device_id: Optional[int] = None,
    pipeline: VoiceQueryPipeline = Depends(get_pipeline),
):
    if duration <= 0:
        raise HTTPException(status_code=422, detail="duration must be positive.")
    level = await asyncio.to_thread(pipeline.mic_level, duration, device_id)
    return level.to_dict()


@app.post("/api/v1/transcribe")
async def transcribe(
    audio_file: UploadFile = File(...),
    overrides: PipelineRequest = Depends(_request),
    pipeline: VoiceQueryPipeline = Depends(get_pipeline),
):
    """Transcribe an uploaded audio file into time-aligned segments."""
    if audio_file is None or audio_file.filename is None:
        raise HTTPException(status_code=400, detail="Audio file is required.")

    logger.info("Audio file received: %s", audio_file.filename)

    try:
        audio_bytes = await audio_file.read()
    except Exception:
        raise HTTPException(status_code=400, detail="Failed to read uploaded file.")

    logger.info("File size: %.2f KB", len(audio_bytes) / 1024)

    segments = await asyncio.to_thread(
        pipeline.transcribe_segments, audio_bytes, overrides, audio_file.filename
    )
    return {
        "text": " ".join(s.text for s in segments if s.text),
        "segments": [s.to_dict() for s in segments],
    }


@app.post("/api/v1/audio-info")
async def upload_audio_info(
    audio_file: UploadFile = File(...),
    pipeline: VoiceQueryPipeline = Depends(get_pipeline),
):
    """Decode an upload and report its format; undecodable files come back as 422."""
    audio_bytes = await audio_file.read()
    info = await asyncio.to_thread(pipeline.audio_info, audio_bytes, audio_file.filename)
    return info.to_dict()


@app.post("/api/v1/record-auto")
async def record_auto(
    overrides: PipelineRequest = Depends(_request),
    pipeline: VoiceQueryPipeline = Depends(get_pipeline),
):
    text = await asyncio.to_thread(pipeline.record_auto, overrides)
    return {"text": text}


@app.post("/api/v1/voice-to-sql")
async def voice_to_sql(
    overrides: PipelineRequest = Depends(_request),
    pipeline: VoiceQueryPipeline = Depends(get_pipeline),
):
    sql = await asyncio.to_thread(pipeline.voice_to_sql, overrides)
    return {"sql": sql}


@app.post("/api/v1/voice-query")
async def voice_query(
    provenance: bool = False,
    overrides: PipelineRequest = Depends(_request),
    pipeline: VoiceQueryPipeline = Depends(get_pipeline),
):
    """Listen, generate SQL, run it, and return the result table."""

    def _run() -> dict:
        result = pipeline.voice_query(overrides, provenance=provenance)
        return result.to_dict()

    payload = await asyncio.to_thread(_run)
    logger.info("Voice query returned %d rows.", payload["row_count"])
    return payload
