from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from syndic.core.logging import get_logger

log = get_logger(__name__)

IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".webp", ".gif"})
DOCUMENT_EXTENSIONS = IMAGE_EXTENSIONS | {".pdf"}
AUDIO_EXTENSIONS = frozenset({".mp3", ".m4a", ".aac", ".wav", ".ogg"})
VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".webm"})
MEDIA_EXTENSIONS = IMAGE_EXTENSIONS | AUDIO_EXTENSIONS | VIDEO_EXTENSIONS


def storage_root(*parts: str | int) -> Path:
    root = Path(current_app.instance_path) / "storage"
    for part in parts:
        root = root / str(part)
    return root


def upload_size(file_obj: FileStorage) -> int:
    stream = file_obj.stream
    position = stream.tell()
    stream.seek(0, 2)
    size = stream.tell()
    stream.seek(position)
    return size


def save_upload(
    file_obj: FileStorage | None,
    *parts: str | int,
    allowed: frozenset[str] | set[str] = DOCUMENT_EXTENSIONS,
    label: str = "File",
) -> str:
    """Store an upload under instance/storage and return its instance-relative path."""
    if file_obj is None or not file_obj.filename:
        raise ValueError(f"{label} is required")
    filename = secure_filename(file_obj.filename)
    suffix = Path(filename).suffix.lower()
    if suffix not in allowed:
        kinds = ", ".join(sorted(ext.lstrip(".") for ext in allowed))
        raise ValueError(f"{label} must be one of: {kinds}")
    max_bytes = current_app.config.get("UPLOAD_MAX_BYTES")
    if max_bytes and upload_size(file_obj) > max_bytes:
        raise ValueError(f"{label} exceeds {max_bytes // (1024 * 1024)} MB")

    root = storage_root(*parts)
    root.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    absolute = root / f"{stamp}-{filename}"
    file_obj.save(absolute)
    return absolute.relative_to(Path(current_app.instance_path)).as_posix()


def media_kind(filename: str) -> str:
    suffix = Path(filename).suffix.lower()
    if suffix in AUDIO_EXTENSIONS:
        return "audio"
    if suffix in VIDEO_EXTENSIONS:
        return "video"
    return "image"


def delete_upload(relative_path: str | None) -> None:
    if not relative_path:
        return
    absolute = Path(current_app.instance_path) / relative_path
    try:
        absolute.unlink(missing_ok=True)
    except OSError as exc:
        log.warning("upload_cleanup_failed", path=relative_path, error=str(exc))
