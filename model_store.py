"""Fetch model files from the Hugging Face Hub into the local cache."""

from __future__ import annotations

import logging
from pathlib import Path

from errors import MODEL_UNAVAILABLE, TranscriptionError, VADModelError

try:
    from huggingface_hub import hf_hub_download, snapshot_download
except Exception:  # pragma: no cover
    hf_hub_download = None  # type: ignore
    snapshot_download = None  # type: ignore

logger = logging.getLogger(__name__)

VAD_REPO = "Narsil/silero"
VAD_FILENAME = "silero_vad.onnx"


def fetch_whisper_model(repo: str, filename: str, cache_dir: Path) -> Path:
    """Download (or reuse) the model snapshot and return its directory."""
    if snapshot_download is None:
        raise TranscriptionError("huggingface_hub is not installed", code=MODEL_UNAVAILABLE)
    try:
        path = Path(snapshot_download(repo_id=repo, cache_dir=str(cache_dir)))
    except Exception as exc:
        raise TranscriptionError(f"cannot download {repo}: {exc}", code=MODEL_UNAVAILABLE) from exc
    if not (path / filename).exists():
        raise TranscriptionError(f"{filename} not found in {repo}", code=MODEL_UNAVAILABLE)
    logger.info("Using whisper model %s", path)
    return path


def fetch_vad_model(cache_dir: Path) -> Path:
    if hf_hub_download is None:
        raise VADModelError("huggingface_hub is not installed")
    try:
        path = hf_hub_download(repo_id=VAD_REPO, filename=VAD_FILENAME, cache_dir=str(cache_dir))
    except Exception as exc:
        raise VADModelError(f"cannot download {VAD_REPO}/{VAD_FILENAME}: {exc}") from exc
    return Path(path)
