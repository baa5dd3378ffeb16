from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/api/health")
async def health(request: Request):
    settings = request.app.state.settings
    controller = request.app.state.campaign_controller

    campaign_info = {"state": None, "armed": False, "images_in_flight": 0}
    if controller:
        campaign_info = {
            "state": controller.state.value,
            "armed": controller.scheduler.armed,
            "images_in_flight": controller.scheduler.in_flight,
        }

    return {
        "status": "ok",
        "campaign": campaign_info,
        "vendors": {
            "fal": {
                "configured": settings.has_fal,
                "model": settings.fal_model,
            },
            "elevenlabs": {
                "configured": settings.has_elevenlabs,
            },
        },
    }
