import asyncio
import json
from typing import Optional

from fastapi import APIRouter, Request, HTTPException
from fastapi.responses import StreamingResponse

from ..models.campaign import CampaignSnapshot
from ..models.transcripts import TranscriptResponse

router = APIRouter(prefix="/api/campaign")

HEARTBEAT_SECONDS = 15.0


def _get_controller(request: Request):
    controller = request.app.state.campaign_controller
    if not controller:
        raise HTTPException(status_code=503, detail="Campaign controller not available")
    return controller


@router.get("", response_model=CampaignSnapshot)
async def get_campaign(request: Request):
    return _get_controller(request).snapshot()


@router.post("/start", response_model=CampaignSnapshot)
async def start_campaign(request: Request):
    controller = _get_controller(request)
    return await controller.start()


@router.post("/stop", response_model=CampaignSnapshot)
async def stop_campaign(request: Request):
    controller = _get_controller(request)
    return await controller.stop()


@router.get("/transcript", response_model=TranscriptResponse)
async def get_transcript(request: Request, since: Optional[int] = None):
    store = _get_controller(request).store
    utterances = store.all() if since is None else store.since(since)
    return {"utterances": utterances, "count": len(utterances)}


@router.get("/stream")
async def campaign_stream(request: Request):
    """Stream campaign snapshots via Server-Sent Events."""
    controller = _get_controller(request)
    updates = controller.subscribe()

    async def event_generator():
        try:
            while True:
                try:
                    snapshot = await asyncio.wait_for(updates.get(), timeout=HEARTBEAT_SECONDS)
                except asyncio.TimeoutError:
                    if await request.is_disconnected():
                        break
                    yield ": heartbeat\n\n"
                    continue
                yield f"data: {json.dumps(snapshot.model_dump(mode='json'))}\n\n"
        finally:
            controller.unsubscribe(updates)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable buffering for nginx
        },
    )
