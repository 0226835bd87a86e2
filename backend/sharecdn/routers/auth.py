from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from sharecdn.context import AppContext
from sharecdn.database import get_db
from sharecdn.dependencies import get_context
from sharecdn.routers.account import user_to_response
from sharecdn.schemas.account import MeResponse
from sharecdn.schemas.auth import LoginRequest, LoginResponse, RegisterRequest
from sharecdn.services.session_service import SESSION_COOKIE_NAME, SESSION_MAX_AGE_SECONDS
from sharecdn.services.user_service import (
    account_validation_error,
    create_user,
    find_user,
    find_user_by_email,
    is_register_blocked,
)
from sharecdn.utils.security import verify_password

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(
    req: LoginRequest,
    response: Response,
    ctx: AppContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    if not req.username or not req.password:
        raise HTTPException(status_code=400, detail="username and password required")

    user = find_user(db, req.username)
    # Same response for unknown users and wrong passwords.
    if not user or not await run_in_threadpool(verify_password, user.password_hash, req.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    response.set_cookie(
        SESSION_COOKIE_NAME,
        ctx.sessions.mint(user.username),
        max_age=SESSION_MAX_AGE_SECONDS,
        path="/",
        httponly=True,
        samesite="lax",
        secure=ctx.settings.cookie_secure,
    )
    return LoginResponse(username=user.username, email=user.email)


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"success": True}


@router.post("/register", response_model=MeResponse, status_code=201)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
    if is_register_blocked(db):
        raise HTTPException(status_code=403, detail="Registration is currently disabled")
    if not req.username or not req.email or not req.password:
        raise HTTPException(status_code=400, detail="Missing username, email or password")

    username = req.username.strip()
    email = req.email.strip()
    error = account_validation_error(username, email, req.password)
    if error:
        raise HTTPException(status_code=400, detail=error)
    if find_user(db, username):
        raise HTTPException(status_code=409, detail="Username already exists")
    if find_user_by_email(db, email):
        raise HTTPException(status_code=409, detail="Email already exists")

    user = await run_in_threadpool(create_user, db, username, email, req.password)
    return MeResponse(user=user_to_response(user))
