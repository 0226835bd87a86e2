from pathlib import PurePath

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from sharecdn.context import AppContext
from sharecdn.database import get_db
from sharecdn.dependencies import get_context, request_origin, require_user
from sharecdn.models.image import Image
from sharecdn.models.user import User
from sharecdn.routers.upload import store_form_file
from sharecdn.schemas.image import (
    DeleteByFilenameRequest,
    ImageListResponse,
    ImageResponse,
    UploadResponse,
)
from sharecdn.services.image_service import (
    delete_image,
    find_owned_image,
    image_url,
    list_images_for,
    record_image,
)

router = APIRouter(prefix="/api", tags=["images"])


def _image_to_response(image: Image) -> ImageResponse:
    return ImageResponse(
        id=image.id,
        filename=image.filename,
        originalname=image.original_name,
        size=image.size_bytes,
        url=image.url,
        owner=image.owner,
        uploaded_at=image.uploaded_at,
    )


@router.get("/images", response_model=ImageListResponse)
async def list_images(user: User = Depends(require_user), db: Session = Depends(get_db)):
    """The caller's images. Admins also see ShareX uploads that matched no account."""
    images = list_images_for(db, user.username, include_unowned=user.is_admin)
    return ImageListResponse(images=[_image_to_response(i) for i in images])


@router.post("/upload", response_model=UploadResponse)
async def dashboard_upload(
    request: Request,
    user: User = Depends(require_user),
    ctx: AppContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    settings = ctx.settings
    filename, original_name, size = await store_form_file(
        request, "file", "No file", settings.upload_dir, settings.max_upload_bytes
    )
    origin = request_origin(request, ctx)
    image = record_image(db, filename, original_name, size, image_url(origin, filename), user.username)
    return UploadResponse(url=image.url, delete_url=f"{origin}/api/images/{image.id}")


@router.delete("/images/{image_id}")
async def delete_image_by_id(
    image_id: str,
    user: User = Depends(require_user),
    ctx: AppContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    image = find_owned_image(db, user.username, image_id=image_id, include_unowned=user.is_admin)
    if not image:
        raise HTTPException(status_code=404, detail="Not found or not owned")
    delete_image(db, image, ctx.settings.upload_dir)
    return {"success": True}


@router.delete("/images")
async def delete_image_by_filename(
    req: DeleteByFilenameRequest,
    user: User = Depends(require_user),
    ctx: AppContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    if not req.filename:
        raise HTTPException(status_code=400, detail="Missing filename")
    filename = PurePath(req.filename).name
    image = find_owned_image(db, user.username, filename=filename, include_unowned=user.is_admin)
    if not image:
        raise HTTPException(status_code=404, detail="Not found or not owned")
    delete_image(db, image, ctx.settings.upload_dir)
    return {"success": True}
