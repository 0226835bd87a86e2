import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from sharecdn.context import AppContext
from sharecdn.database import get_db
from sharecdn.dependencies import get_context, require_admin
from sharecdn.routers.account import user_to_response
from sharecdn.schemas.account import (
    MeResponse,
    RegisterLockResponse,
    RegisterLockUpdate,
    UserCreate,
    UserListResponse,
)
from sharecdn.services.image_service import remove_file
from sharecdn.services.user_service import (
    account_validation_error,
    background_of,
    create_user,
    delete_user,
    find_user,
    find_user_by_email,
    is_register_blocked,
    list_users,
    set_register_blocked,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/account/users", response_model=UserListResponse)
async def admin_list_users(db: Session = Depends(get_db)):
    return UserListResponse(users=[user_to_response(u) for u in list_users(db)])


@router.post("/account/users", response_model=MeResponse)
async def admin_create_user(req: UserCreate, db: Session = Depends(get_db)):
    if not req.newUsername or not req.email or not req.password:
        raise HTTPException(status_code=400, detail="newUsername, email and password required")

    username = req.newUsername.strip()
    email = req.email.strip()
    error = account_validation_error(username, email, req.password)
    if error:
        raise HTTPException(status_code=400, detail=error)
    if find_user(db, username):
        raise HTTPException(status_code=409, detail="Username already exists")
    if find_user_by_email(db, email):
        raise HTTPException(status_code=409, detail="Email already exists")

    user = await run_in_threadpool(create_user, db, username, email, req.password)
    logger.info("Admin created user '%s'", username)
    return MeResponse(user=user_to_response(user))


@router.delete("/account/users/{username}")
async def admin_delete_user(
    username: str,
    ctx: AppContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    target = find_user(db, username)
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    if target.is_admin:
        raise HTTPException(status_code=400, detail="Cannot delete admin account")

    settings = ctx.settings
    for image in target.images:
        remove_file(settings.upload_dir, image.filename)
    background = background_of(target)
    if background["type"] == "image":
        remove_file(settings.background_dir, background["value"].removeprefix("/backgrounds/"))

    delete_user(db, username)
    logger.info("Admin deleted user '%s'", username)
    return {"success": True}


@router.get("/admin/register", response_model=RegisterLockResponse)
async def get_register_lock(db: Session = Depends(get_db)):
    return RegisterLockResponse(blocked=is_register_blocked(db))


@router.post("/admin/register", response_model=RegisterLockResponse)
async def set_register_lock(req: RegisterLockUpdate, db: Session = Depends(get_db)):
    blocked = req.blocked is True or req.blocked == "true"
    return RegisterLockResponse(blocked=set_register_blocked(db, blocked))
