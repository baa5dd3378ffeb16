from pathlib import Path

from fastapi import APIRouter, Response
from fastapi.responses import HTMLResponse

STATIC_DIR = Path(__file__).resolve().parent.parent / "static"

router = APIRouter()


@router.get("/favicon.ico")
async def favicon():
    """Return empty favicon to prevent 404 errors."""
    return Response(content="", media_type="image/x-icon")


@router.get("/", response_class=HTMLResponse)
async def serve_ui():
    """Serve the campaign page."""
    return HTMLResponse(content=(STATIC_DIR / "index.html").read_text(encoding="utf-8"))
