import logging
import mimetypes
import uuid
from pathlib import Path
from typing import AsyncIterator
from urllib.parse import quote

from sqlalchemy import or_
from sqlalchemy.orm import Session

from sharecdn.models.image import Image
from sharecdn.services.user_service import now_ms
from sharecdn.utils.filesystem import resolve_inside, unique_filename

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class UploadTooLarge(Exception):
    def __init__(self, max_bytes: int):
        super().__init__(f"File too large (max {max_bytes} bytes)")
        self.max_bytes = max_bytes


class EmptyUpload(ValueError):
    pass


def is_image_upload(content_type: str | None, filename: str | None = None) -> bool:
    """Accept ``image/*`` content types; fall back to the filename for generic binary bodies."""
    ctype = (content_type or "").split(";")[0].strip().lower()
    if ctype.startswith("image/"):
        return True
    if ctype in ("", "application/octet-stream") and filename:
        guessed, _ = mimetypes.guess_type(filename)
        return bool(guessed) and guessed.startswith("image/")
    return False


async def iter_upload_file(upload, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    while True:
        chunk = await upload.read(chunk_size)
        if not chunk:
            break
        yield chunk


async def save_stream(chunks: AsyncIterator[bytes], dest: Path, max_bytes: int) -> int:
    """Write *chunks* to a new file at *dest*, aborting once *max_bytes* is exceeded.

    The partial file is removed on any failure.
    """
    size = 0
    try:
        with open(dest, "xb") as f:
            async for chunk in chunks:
                size += len(chunk)
                if size > max_bytes:
                    raise UploadTooLarge(max_bytes)
                f.write(chunk)
    except BaseException:
        try:
            dest.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove partial upload %s: %s", dest, exc)
        raise
    return size


async def store_upload(
    chunks: AsyncIterator[bytes], original_name: str | None, directory: Path, max_bytes: int
) -> tuple[str, int]:
    """Store an upload under a unique name in *directory*. Returns (stored_name, size)."""
    filename = unique_filename(original_name)
    dest = directory / filename
    size = await save_stream(chunks, dest, max_bytes)
    if size == 0:
        dest.unlink(missing_ok=True)
        raise EmptyUpload("Empty file")
    return filename, size


def image_url(origin: str, filename: str) -> str:
    return f"{origin}/i/{quote(filename)}"


def record_image(
    db: Session,
    filename: str,
    original_name: str | None,
    size_bytes: int,
    url: str,
    owner: str | None,
) -> Image:
    image = Image(
        id=str(uuid.uuid4()),
        filename=filename,
        original_name=original_name,
        size_bytes=size_bytes,
        url=url,
        owner=owner,
        uploaded_at=now_ms(),
    )
    db.add(image)
    db.commit()
    db.refresh(image)
    return image


def _visible_images(db: Session, username: str, include_unowned: bool):
    if include_unowned:
        return db.query(Image).filter(or_(Image.owner == username, Image.owner.is_(None)))
    return db.query(Image).filter(Image.owner == username)


def list_images_for(db: Session, username: str, include_unowned: bool = False) -> list[Image]:
    """Images owned by *username*; with *include_unowned*, also uploads that matched no user."""
    return _visible_images(db, username, include_unowned).order_by(Image.uploaded_at.desc()).all()


def find_owned_image(
    db: Session,
    username: str,
    image_id: str | None = None,
    filename: str | None = None,
    include_unowned: bool = False,
) -> Image | None:
    query = _visible_images(db, username, include_unowned)
    if image_id is not None:
        query = query.filter(Image.id == image_id)
    elif filename is not None:
        query = query.filter(Image.filename == filename)
    else:
        return None
    return query.first()


def remove_file(base_dir: Path, filename: str) -> None:
    path = resolve_inside(base_dir, filename)
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove %s: %s", path, exc)


def delete_image(db: Session, image: Image, upload_dir: Path) -> None:
    remove_file(upload_dir, image.filename)
    db.delete(image)
    db.commit()

