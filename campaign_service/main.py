import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .config import CampaignSettings
from .errors import CampaignError
from .services.audio import LocalAudio
from .services.campaign_controller import CampaignController
from .services.credential_service import CredentialService
from .services.image_scheduler import ImageScheduler
from .services.image_service import ImageService
from .services.voice_session import ElevenLabsVoiceSession
from .api import api_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_controller(settings: CampaignSettings, image_service: ImageService,
                     credential_service: CredentialService) -> CampaignController:
    audio = LocalAudio(sample_rate=settings.audio_sample_rate)
    scheduler = ImageScheduler.from_settings(settings, image_service.generate)
    return CampaignController(
        credentials=credential_service,
        scheduler=scheduler,
        microphone=audio,
        session_factory=lambda: ElevenLabsVoiceSession(audio),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = CampaignSettings()
    app.state.settings = settings

    if not settings.has_fal:
        logger.warning("FAL_KEY not set; image generation will fail")
    if not settings.has_elevenlabs:
        logger.warning("ELEVENLABS_API_KEY / ELEVENLABS_AGENT_ID not set; campaigns cannot start")

    image_service = ImageService(settings)
    credential_service = CredentialService(settings)
    controller = build_controller(settings, image_service, credential_service)

    app.state.image_service = image_service
    app.state.credential_service = credential_service
    app.state.campaign_controller = controller
    logger.info("Campaign service ready (image model: %s)", settings.fal_model)

    try:
        yield
    finally:
        # Shutdown
        await controller.aclose()
        logger.info("Campaign controller stopped")
        await credential_service.close()


app = FastAPI(
    title="Campaign Service",
    version="0.1.0",
    description="Voice-driven Dungeon Master campaign with live scene illustrations",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


class BearerTokenMiddleware(BaseHTTPMiddleware):
    """Optional bearer token authentication.

    When CAMPAIGN_SERVICE_TOKEN is set, all requests must include
    a matching Authorization: Bearer <token> header.
    When not set, all requests are allowed (local dev mode).
    """

    async def dispatch(self, request: Request, call_next):
        token = request.app.state.settings.campaign_service_token
        if token:
            auth = request.headers.get("authorization", "")
            if not auth.startswith("Bearer ") or auth[7:] != token:
                return JSONResponse(status_code=401, content={"detail": "Unauthorized"})
        return await call_next(request)


app.add_middleware(BearerTokenMiddleware)


@app.exception_handler(CampaignError)
async def campaign_error_handler(request: Request, exc: CampaignError):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    settings = CampaignSettings()
    uvicorn.run(
        "campaign_service.main:app",
        host="0.0.0.0",
        port=settings.campaign_service_port,
        reload=True,
    )
