from fastapi import APIRouter

from .health import router as health_router
from .images import router as images_router
from .credentials import router as credentials_router
from .campaign import router as campaign_router
from .ui import router as ui_router

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(images_router, tags=["images"])
api_router.include_router(credentials_router, tags=["credentials"])
api_router.include_router(campaign_router, tags=["campaign"])
api_router.include_router(ui_router, tags=["ui"])
