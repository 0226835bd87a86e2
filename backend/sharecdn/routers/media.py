from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from sharecdn.context import AppContext
from sharecdn.dependencies import get_context
from sharecdn.utils.filesystem import resolve_inside

router = APIRouter(tags=["media"])


def _serve(base_dir: Path, filename: str, cache_control: str) -> FileResponse:
    path = resolve_inside(base_dir, filename)
    if path is None:
        raise HTTPException(status_code=400, detail="Invalid filename")
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Not found")
    return FileResponse(path=str(path), headers={"Cache-Control": cache_control})


@router.get("/i/{filename}")
async def raw_image(filename: str, ctx: AppContext = Depends(get_context)):
    return _serve(ctx.settings.upload_dir, filename, "public, max-age=31536000, immutable")


@router.get("/backgrounds/{filename}")
async def background_image(filename: str, ctx: AppContext = Depends(get_context)):
    return _serve(ctx.settings.background_dir, filename, "public, max-age=604800")
