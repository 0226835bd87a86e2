import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from sharecdn.context import AppContext
from sharecdn.dependencies import get_context, request_origin, require_user
from sharecdn.models.user import User

router = APIRouter(prefix="/api", tags=["sharex"])

SXCU_VERSION = "17.0.0"


def build_sxcu(origin: str, token: str, email: str, mode: str = "binary") -> dict:
    """ShareX custom uploader profile posting to ``/upload``.

    ``multipart`` sends the image as form field ``file``; anything else sends
    the raw bytes with the original name in ``X-Filename``.
    """
    headers = {"Authorization": f"Bearer {token}", "X-User-Email": email}
    profile = {
        "Version": SXCU_VERSION,
        "DestinationType": "ImageUploader, FileUploader",
        "RequestMethod": "POST",
        "RequestURL": f"{origin}/upload",
        "Headers": headers,
        "URL": "{json:url}",
        "DeletionURL": "{json:delete_url}",
        "ErrorMessage": "{json:error}",
    }
    if mode == "multipart":
        profile["Name"] = f"sharecdn multipart uploader ({origin})"
        profile["Body"] = "MultipartFormData"
        profile["FileFormName"] = "file"
    else:
        profile["Name"] = f"sharecdn binary uploader ({origin})"
        profile["Body"] = "Binary"
        headers["X-Filename"] = "{filename}"
    return profile


async def requested_mode(request: Request) -> str:
    """``mode`` or ``type`` from the query string, else ``mode`` from a JSON body."""
    mode = request.query_params.get("mode") or request.query_params.get("type")
    if not mode and request.method == "POST":
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            mode = body.get("mode") or body.get("type")
    return "multipart" if str(mode or "").lower() == "multipart" else "binary"


@router.get("/generate-sxcu")
@router.post("/generate-sxcu")
async def generate_sxcu(
    request: Request,
    user: User = Depends(require_user),
    ctx: AppContext = Depends(get_context),
):
    mode = await requested_mode(request)
    # Embeds the current-run token; if none is known a new one replaces the old.
    token = await run_in_threadpool(ctx.upload_tokens.issue)
    profile = build_sxcu(request_origin(request, ctx), token, user.email or "", mode)
    return Response(
        content=json.dumps(profile, indent=2),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="sharecdn-{mode}.sxcu"'},
    )
