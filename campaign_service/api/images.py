from typing import Optional

from fastapi import APIRouter, Request, HTTPException

from ..models.campaign import ImageRequest, ImageResponse

router = APIRouter(prefix="/api/fal")


def _get_image_service(request: Request):
    svc = request.app.state.image_service
    if not svc:
        raise HTTPException(status_code=503, detail="Image service not available")
    return svc


@router.post("/generate", response_model=ImageResponse)
async def generate_image(request: Request, body: Optional[ImageRequest] = None):
    svc = _get_image_service(request)
    image_url = await svc.generate(body.prompt if body else None)
    return {"imageUrl": image_url}
