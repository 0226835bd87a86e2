from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from sharecdn.context import AppContext
from sharecdn.database import get_db
from sharecdn.models.user import User
from sharecdn.services.session_service import SESSION_COOKIE_NAME
from sharecdn.services.user_service import find_user


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def request_origin(request: Request, ctx: AppContext) -> str:
    if ctx.settings.public_origin:
        return ctx.settings.public_origin.rstrip("/")
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
    return f"{proto}://{host}"


def session_username(request: Request, ctx: AppContext) -> str | None:
    return ctx.sessions.verify(request.cookies.get(SESSION_COOKIE_NAME))


async def require_session(request: Request, ctx: AppContext = Depends(get_context)) -> str:
    username = session_username(request, ctx)
    if not username:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return username


async def require_user(
    username: str = Depends(require_session),
    db: Session = Depends(get_db),
) -> User:
    user = find_user(db, username)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def require_admin(user: User = Depends(require_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


async def enforce_upload_rate_limit(request: Request, ctx: AppContext = Depends(get_context)) -> None:
    if not ctx.rate_limiter.allow(client_ip(request)):
        raise HTTPException(status_code=429, detail="Too many requests")


async def require_upload_token(
    authorization: str | None = Header(None),
    ctx: AppContext = Depends(get_context),
) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    token = authorization[7:].strip()
    if not await run_in_threadpool(ctx.upload_tokens.verify, token):
        raise HTTPException(status_code=401, detail="Invalid upload token")
    return token
