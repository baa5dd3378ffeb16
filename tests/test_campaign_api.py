"""Tests for /api/campaign/* endpoints and the campaign page."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from campaign_service.api import campaign as campaign_api
from campaign_service.errors import SessionConnectionError
from campaign_service.services.voice_session import VoiceEvent

from conftest import settle


pytestmark = pytest.mark.asyncio


async def test_get_campaign_initial_snapshot(client):
    resp = await client.get("/api/campaign")
    assert resp.status_code == 200
    data = resp.json()
    assert data["state"] == "idle"
    assert data["utterances"] == []
    assert data["current_image"] is None
    assert data["is_generating"] is False


async def test_start_then_stop(client, app_with_mocks):
    resp = await client.post("/api/campaign/start")
    assert resp.status_code == 200
    assert resp.json()["state"] == "connecting"

    factory = app_with_mocks.state.session_factory
    factory.last.emit(VoiceEvent.connect())
    await settle()
    resp = await client.get("/api/campaign")
    assert resp.json()["state"] == "connected"
    assert resp.json()["status_text"] == "Listening to the party..."

    resp = await client.post("/api/campaign/stop")
    assert resp.status_code == 200
    assert resp.json()["state"] == "idle"
    assert factory.last.closed is True


async def test_start_twice_conflicts(client):
    await client.post("/api/campaign/start")
    resp = await client.post("/api/campaign/start")
    assert resp.status_code == 409
    assert "error" in resp.json()


async def test_stop_from_idle_is_noop(client):
    resp = await client.post("/api/campaign/stop")
    assert resp.status_code == 200
    assert resp.json()["state"] == "idle"


async def test_start_failure_surfaces_error(client, app_with_mocks):
    controller = app_with_mocks.state.campaign_controller
    controller.credentials.get_signed_url.side_effect = SessionConnectionError("Failed to get signed URL")
    resp = await client.post("/api/campaign/start")
    assert resp.status_code == 502
    assert resp.json() == {"error": "Failed to get signed URL"}

    resp = await client.get("/api/campaign")
    data = resp.json()
    assert data["state"] == "idle"
    assert data["error"] == "Failed to get signed URL"


async def test_transcript_endpoint(client, app_with_mocks):
    controller = app_with_mocks.state.campaign_controller
    clock = controller.scheduler._clock
    await client.post("/api/campaign/start")
    session = app_with_mocks.state.session_factory.last
    session.emit(VoiceEvent.connect())
    await settle()

    clock.now = 1000
    session.emit(VoiceEvent.message("ai", "Hello"))
    await settle()
    clock.now = 9000
    session.emit(VoiceEvent.message("user", "Goblins attack"))
    await settle()

    resp = await client.get("/api/campaign/transcript")
    data = resp.json()
    assert data["count"] == 2
    assert data["utterances"][0] == {"speaker": "Dungeon Master", "text": "Hello", "timestamp": 1000}
    assert data["utterances"][1]["speaker"] == "Team"

    resp = await client.get("/api/campaign/transcript", params={"since": 8000})
    data = resp.json()
    assert data["count"] == 1
    assert data["utterances"][0]["text"] == "Goblins attack"


async def test_campaign_service_unavailable(client_no_services):
    resp = await client_no_services.get("/api/campaign")
    assert resp.status_code == 503
    resp = await client_no_services.post("/api/campaign/start")
    assert resp.status_code == 503


async def test_campaign_page(client):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert "text/html" in resp.headers["content-type"]
    assert "Chronicle of Events" in resp.text
    assert "/api/campaign/stream" in resp.text
    # shown initially and re-rendered whenever a new campaign clears the transcript
    assert resp.text.count("The story has yet to begin...") == 2


# ---------------------------------------------------------------------------
# /api/campaign/stream
# ---------------------------------------------------------------------------

def _stream_request(controller, disconnected=False):
    return SimpleNamespace(
        app=SimpleNamespace(state=SimpleNamespace(campaign_controller=controller)),
        is_disconnected=AsyncMock(return_value=disconnected),
    )


def _parse_frame(chunk):
    assert chunk.startswith("data: ")
    assert chunk.endswith("\n\n")
    return json.loads(chunk[len("data: "):])


async def test_stream_sends_snapshots_then_unsubscribes(controller_and_factory):
    controller, _ = controller_and_factory
    resp = await campaign_api.campaign_stream(_stream_request(controller))
    assert resp.media_type == "text/event-stream"
    body = resp.body_iterator

    first = _parse_frame(await body.__anext__())
    assert first["state"] == "idle"
    assert first["utterances"] == []
    assert len(controller._listeners) == 1

    await controller.start()
    second = _parse_frame(await body.__anext__())
    assert second["state"] == "connecting"

    await body.aclose()
    assert controller._listeners == set()


async def test_stream_heartbeat_and_client_disconnect(controller_and_factory, monkeypatch):
    controller, _ = controller_and_factory
    monkeypatch.setattr(campaign_api, "HEARTBEAT_SECONDS", 0.01)

    request = _stream_request(controller)
    resp = await campaign_api.campaign_stream(request)
    body = resp.body_iterator
    _parse_frame(await body.__anext__())

    assert await body.__anext__() == ": heartbeat\n\n"

    request.is_disconnected.return_value = True
    with pytest.raises(StopAsyncIteration):
        await body.__anext__()
    assert controller._listeners == set()
