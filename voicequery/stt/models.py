"""
voicequery/stt/models.py
=========================
Model Catalog & Cache — VoiceQuery

Responsibility:
    - Know which Whisper model names exist and which are English-only
    - Resolve a model name to its local storage location
    - Cache loaded model handles so each model is loaded at most once

This module does NOT:
    - Download models
    - Run inference
"""

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

logger = logging.getLogger("voicequery.stt.models")

# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

AVAILABLE_MODELS: Dict[str, str] = {
    "tiny": "Tiny multilingual model (~75MB, fastest)",
    "tiny.en": "Tiny English-only model (~75MB, fastest)",
    "base": "Base multilingual model (~142MB)",
    "base.en": "Base English-only model (~142MB)",
    "small": "Small multilingual model (~466MB)",
    "small.en": "Small English-only model (~466MB)",
    "medium": "Medium multilingual model (~1.5GB)",
    "medium.en": "Medium English-only model (~1.5GB)",
    "large-v1": "Large multilingual model v1 (~2.9GB, most accurate)",
    "large-v2": "Large multilingual model v2 (~2.9GB, most accurate)",
    "large-v3": "Large multilingual model v3 (~2.9GB, most accurate)",
    "large-v3-turbo": "Large multilingual model v3 turbo (~1.6GB, fast + accurate)",
}


@dataclass(frozen=True)
class ModelInfo:
    name: str
    path: str
    is_downloaded: bool
    multilingual: bool
    description: str

    def to_dict(self) -> dict:
        return {
            "model_name": self.name,
            "file_path": self.path,
            "is_downloaded": self.is_downloaded,
            "multilingual": self.multilingual,
            "description": self.description,
        }


def is_multilingual(name: str) -> bool:
    """English-only checkpoints carry the '.en' suffix."""
    return not name.endswith(".en")


def model_dir(name: str, base_path: str) -> str:
    """Local directory holding the converted checkpoint for ``name``."""
    return os.path.join(os.path.expanduser(base_path), name)


def list_models(base_path: str) -> List[ModelInfo]:
    """All catalog models with their local presence flag."""
    infos = []
    for name, description in AVAILABLE_MODELS.items():
        path = model_dir(name, base_path)
        infos.append(
            ModelInfo(
                name=name,
                path=path,
                is_downloaded=os.path.isdir(path),
                multilingual=is_multilingual(name),
                description=description,
            )
        )
    return infos


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class ModelCache:
    """
    Loaded-model cache keyed by model path.

    One lock covers the whole lookup-or-insert, so concurrent callers asking
    for the same key trigger a single load. A failed load caches nothing.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: Dict[str, Any] = {}

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        with self._lock:
            handle = self._handles.get(key)
            if handle is not None:
                return handle

            logger.info("Loading model %s (first use, will be cached)...", key)
            handle = loader()
            self._handles[key] = handle
            logger.info("Model %s loaded and cached.", key)
            return handle

    def clear(self, key: str) -> None:
        with self._lock:
            self._handles.pop(key, None)

    def clear_all(self) -> None:
        with self._lock:
            self._handles.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
