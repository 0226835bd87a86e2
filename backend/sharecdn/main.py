import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sharecdn.config import Settings, settings as default_settings
from sharecdn.context import build_context
from sharecdn.routers import account, auth, images, media, sharex, upload, users
from sharecdn.services.secrets_service import ProvisioningError

logger = logging.getLogger("sharecdn")

VERSION = "0.1.0"


def _announce_generated_credentials(ctx) -> None:
    token = ctx.upload_tokens.current_plaintext
    if token:
        logger.warning("Upload token generated for this run (shown once, copy it now): %s", token)
    if ctx.initial_admin_password:
        logger.warning(
            "Default admin '%s' created with password (shown once, change it in Settings): %s",
            ctx.settings.admin_username,
            ctx.initial_admin_password,
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        ctx = build_context(app.state.settings)
    except ProvisioningError as exc:
        logger.error("Startup aborted: %s", exc)
        raise
    app.state.context = ctx
    logger.info("Serving uploads from %s", ctx.settings.upload_dir.resolve())
    _announce_generated_credentials(ctx)
    yield
    ctx.close()


def _error(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code, headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return _error(400, message)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error")


def create_app(settings: Settings | None = None) -> FastAPI:
    app = FastAPI(
        title="sharecdn",
        description="Self-hosted image upload service with ShareX support",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings or default_settings

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(upload.router)
    app.include_router(media.router)
    app.include_router(auth.router)
    app.include_router(account.router)
    app.include_router(images.router)
    app.include_router(users.router)
    app.include_router(sharex.router)

    @app.get("/healthz")
    async def healthz():
        return {"ok": True}

    return app


app = create_app()
