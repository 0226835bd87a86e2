import logging
import time
from pathlib import Path
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.datastructures import FormData, UploadFile
from starlette.formparsers import MultiPartException, MultiPartParser

from sharecdn.context import AppContext
from sharecdn.database import get_db
from sharecdn.dependencies import (
    enforce_upload_rate_limit,
    get_context,
    request_origin,
    require_upload_token,
)
from sharecdn.schemas.image import UploadResponse
from sharecdn.services.image_service import (
    EmptyUpload,
    UploadTooLarge,
    image_url,
    is_image_upload,
    iter_upload_file,
    record_image,
    store_upload,
)
from sharecdn.services.user_service import find_user_by_email

logger = logging.getLogger(__name__)

router = APIRouter(tags=["upload"])

# Allowance for boundaries and part headers on top of the file size cap.
MULTIPART_OVERHEAD = 64 * 1024


def reject_oversized_body(request: Request, limit: int) -> None:
    """413 before reading anything when the declared Content-Length is over *limit*."""
    length = request.headers.get("content-length", "")
    if length.isdigit() and int(length) > limit:
        raise HTTPException(status_code=413, detail=str(UploadTooLarge(limit)))


async def capped_stream(request: Request, limit: int) -> AsyncIterator[bytes]:
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > limit:
            raise UploadTooLarge(limit)
        yield chunk


async def read_multipart(request: Request, max_bytes: int) -> FormData:
    """Parse a multipart body, cutting the read off once it exceeds *max_bytes* plus overhead.

    The caller must ``await form.close()`` when done.
    """
    limit = max_bytes + MULTIPART_OVERHEAD
    reject_oversized_body(request, limit)
    parser = MultiPartParser(request.headers, capped_stream(request, limit))
    try:
        return await parser.parse()
    except UploadTooLarge:
        raise HTTPException(status_code=413, detail=str(UploadTooLarge(max_bytes)))
    except MultiPartException as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    except KeyError:
        raise HTTPException(status_code=400, detail="Missing multipart boundary")


async def store_or_reject(
    chunks: AsyncIterator[bytes], original_name: str | None, directory: Path, max_bytes: int
) -> tuple[str, int]:
    try:
        return await store_upload(chunks, original_name, directory, max_bytes)
    except UploadTooLarge as exc:
        raise HTTPException(status_code=413, detail=str(exc))
    except EmptyUpload as exc:
        raise HTTPException(status_code=400, detail=str(exc))


async def store_form_file(
    request: Request, field: str, missing_detail: str, directory: Path, max_bytes: int
) -> tuple[str, str | None, int]:
    """Read the image in multipart *field* into *directory*. Returns (stored_name, original_name, size)."""
    form = await read_multipart(request, max_bytes)
    try:
        upload = form.get(field)
        if not isinstance(upload, UploadFile):
            raise HTTPException(status_code=400, detail=missing_detail)
        if not is_image_upload(upload.content_type, upload.filename):
            raise HTTPException(status_code=400, detail="Only image/* allowed")
        filename, size = await store_or_reject(
            iter_upload_file(upload), upload.filename or field, directory, max_bytes
        )
        return filename, upload.filename, size
    finally:
        await form.close()


@router.post(
    "/upload",
    response_model=UploadResponse,
    # Order matters: the rate limit applies before the token is checked.
    dependencies=[Depends(enforce_upload_rate_limit), Depends(require_upload_token)],
)
async def sharex_upload(
    request: Request,
    ctx: AppContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    """ShareX endpoint: multipart (field ``file``) or a raw image body named by ``X-Filename``."""
    settings = ctx.settings
    content_type = request.headers.get("content-type", "").lower()

    if content_type.startswith("multipart/form-data"):
        filename, original_name, size = await store_form_file(
            request, "file", "No file provided (field name: file)",
            settings.upload_dir, settings.max_upload_bytes,
        )
    else:
        reject_oversized_body(request, settings.max_upload_bytes)
        original_name = request.headers.get("x-filename") or f"{int(time.time() * 1000)}.png"
        if not is_image_upload(content_type, original_name):
            raise HTTPException(status_code=400, detail="Only image/* allowed")
        filename, size = await store_or_reject(
            request.stream(), original_name, settings.upload_dir, settings.max_upload_bytes
        )

    origin = request_origin(request, ctx)
    owner = find_user_by_email(db, request.headers.get("x-user-email", ""))
    image = record_image(
        db, filename, original_name, size, image_url(origin, filename), owner.username if owner else None
    )
    logger.info("Stored upload %s (%d bytes, owner=%s)", filename, size, image.owner)
    return UploadResponse(url=image.url, delete_url=f"{origin}/api/images/{image.id}")
