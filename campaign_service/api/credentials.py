from fastapi import APIRouter, Request, HTTPException

from ..models.campaign import SignedUrlResponse

router = APIRouter(prefix="/api/elevenlabs")


def _get_credential_service(request: Request):
    svc = request.app.state.credential_service
    if not svc:
        raise HTTPException(status_code=503, detail="Credential service not available")
    return svc


@router.get("/signed-url", response_model=SignedUrlResponse)
async def signed_url(request: Request):
    svc = _get_credential_service(request)
    url = await svc.get_signed_url()
    return {"signedUrl": url}
