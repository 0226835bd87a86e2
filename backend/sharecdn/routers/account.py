from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from sharecdn.context import AppContext
from sharecdn.database import get_db
from sharecdn.dependencies import get_context, require_user
from sharecdn.models.user import User
from sharecdn.schemas.account import (
    BackgroundPreference,
    BackgroundResponse,
    BackgroundTemplatesResponse,
    BackgroundUpdate,
    EmailUpdate,
    MeResponse,
    SettingsUpdate,
    UserResponse,
)
from sharecdn.routers.upload import store_form_file
from sharecdn.services.image_service import remove_file
from sharecdn.services.user_service import (
    DEFAULT_BACKGROUND,
    EMAIL_RE,
    MIN_PASSWORD_LENGTH,
    TEMPLATE_BACKGROUNDS,
    background_of,
    find_user_by_email,
    set_background,
    update_user,
)
from sharecdn.utils.security import hash_password, verify_password

router = APIRouter(prefix="/api", tags=["account"])


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        username=user.username,
        email=user.email or "",
        role=user.role,
        created_at=user.created_at,
        backgroundPreference=BackgroundPreference(**background_of(user)),
    )


@router.get("/me", response_model=MeResponse)
@router.get("/account/me", response_model=MeResponse)
async def account_me(user: User = Depends(require_user)):
    return MeResponse(user=user_to_response(user))


@router.post("/settings")
@router.post("/account/settings")
async def account_settings(
    req: SettingsUpdate,
    user: User = Depends(require_user),
    ctx: AppContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    """Change the password and/or set a new upload token. Both need the current password."""
    if req.newPassword or req.newUploadToken:
        if not req.currentPassword:
            raise HTTPException(status_code=400, detail="currentPassword required")
        if not await run_in_threadpool(verify_password, user.password_hash, req.currentPassword):
            raise HTTPException(status_code=401, detail="Current password incorrect")
    if req.newPassword and len(req.newPassword) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    if req.newUploadToken and len(req.newUploadToken) < 6:
        raise HTTPException(status_code=400, detail="Upload token must be at least 6 characters")

    if req.newPassword:
        new_hash = await run_in_threadpool(hash_password, req.newPassword)
        update_user(db, user.username, password_hash=new_hash)
    if req.newUploadToken:
        await run_in_threadpool(ctx.upload_tokens.rotate, req.newUploadToken)

    return {"success": True, "message": "Settings updated"}


@router.post("/account/email")
async def update_email(
    req: EmailUpdate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    email = (req.email or "").strip()
    if not email:
        raise HTTPException(status_code=400, detail="Email required")
    if not EMAIL_RE.match(email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    other = find_user_by_email(db, email)
    if other and other.username != user.username:
        raise HTTPException(status_code=409, detail="Email already in use")

    update_user(db, user.username, email=email)
    return {"success": True, "email": email, "message": "Email updated"}


@router.get("/account/background/templates", response_model=BackgroundTemplatesResponse)
async def background_templates(_user: User = Depends(require_user)):
    return BackgroundTemplatesResponse(
        templates=TEMPLATE_BACKGROUNDS,
        defaultBackground=BackgroundPreference(**DEFAULT_BACKGROUND),
    )


@router.post("/account/background", response_model=BackgroundResponse)
async def update_background(
    req: BackgroundUpdate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    if not req.preference:
        raise HTTPException(status_code=400, detail="preference required")
    saved = set_background(db, user.username, req.preference)
    return BackgroundResponse(backgroundPreference=BackgroundPreference(**saved))


@router.post("/account/background/upload", response_model=BackgroundResponse)
async def upload_background(
    request: Request,
    user: User = Depends(require_user),
    ctx: AppContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    settings = ctx.settings
    filename, _original, _size = await store_form_file(
        request, "background", "No file uploaded", settings.background_dir, settings.max_background_bytes
    )
    previous = background_of(user)
    saved = set_background(db, user.username, {"type": "image", "value": f"/backgrounds/{filename}"})
    if previous["type"] == "image":
        remove_file(settings.background_dir, previous["value"].removeprefix("/backgrounds/"))
    return BackgroundResponse(backgroundPreference=BackgroundPreference(**saved))
