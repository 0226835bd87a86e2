import re
import time
import uuid
from pathlib import Path

from sharecdn.config import Settings

# Sanitized original name kept in stored filenames; the full name stays under 255 bytes.
MAX_NAME_LENGTH = 100


def ensure_storage_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    settings.background_dir.mkdir(parents=True, exist_ok=True)


def sanitize_filename(name: str) -> str:
    name = re.sub(r"\s+", "_", name)
    return re.sub(r"[^a-zA-Z0-9._-]", "_", name)


def truncate_filename(name: str, max_length: int = MAX_NAME_LENGTH) -> str:
    """Shorten *name* to *max_length* characters, keeping a short extension intact."""
    if len(name) <= max_length:
        return name
    stem, dot, ext = name.rpartition(".")
    if dot and stem and len(ext) <= 16:
        return stem[: max_length - len(ext) - 1] + "." + ext
    return name[:max_length]


def unique_filename(original: str | None, fallback: str = "file") -> str:
    """Stored name: ``<epoch_ms>-<uuid4>-<sanitized original>``."""
    safe = truncate_filename(sanitize_filename(original or fallback)) or fallback
    return f"{int(time.time() * 1000)}-{uuid.uuid4()}-{safe}"


def resolve_inside(base_dir: Path, filename: str) -> Path | None:
    """Join *filename* onto *base_dir*, returning None if the result escapes it."""
    base = base_dir.resolve()
    candidate = (base / filename).resolve()
    if candidate == base or base not in candidate.parents:
        return None
    return candidate
