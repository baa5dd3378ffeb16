"""Test configuration and shared fixtures for campaign service tests.

Vendors are never contacted: the image vendor client, the credential service,
the microphone and the voice session are all replaced by fakes.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from campaign_service.config import CampaignSettings
from campaign_service.services.campaign_controller import CampaignController
from campaign_service.services.image_scheduler import ImageScheduler
from campaign_service.services.image_service import ImageService


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_settings(**overrides) -> CampaignSettings:
    defaults = {
        "fal_key": "fal-test-key",
        "elevenlabs_api_key": "xi-test-key",
        "elevenlabs_agent_id": "agent-test",
        "campaign_service_token": None,
    }
    defaults.update(overrides)
    return CampaignSettings(**defaults)


async def settle(rounds: int = 10):
    """Let queued callbacks and the controller's dispatch task run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = 0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


class FakeVoiceSession:
    def __init__(self):
        self.signed_url = None
        self.emit = None
        self.closed = False
        self.open_error = None

    async def open(self, signed_url, emit):
        if self.open_error:
            raise self.open_error
        self.signed_url = signed_url
        self.emit = emit

    async def close(self):
        self.closed = True


class FakeSessionFactory:
    def __init__(self):
        self.sessions: list[FakeVoiceSession] = []
        self.open_error = None

    def __call__(self) -> FakeVoiceSession:
        session = FakeVoiceSession()
        session.open_error = self.open_error
        self.sessions.append(session)
        return session

    @property
    def last(self) -> FakeVoiceSession:
        return self.sessions[-1]


# ---------------------------------------------------------------------------
# Mock services
# ---------------------------------------------------------------------------

def make_mock_credential_service():
    svc = AsyncMock()
    svc.get_signed_url = AsyncMock(return_value="wss://voice.example.test/convai?token=abc")
    return svc


def make_mock_microphone():
    mic = AsyncMock()
    mic.request_permission = AsyncMock(return_value=None)
    return mic


def make_mock_fal_client(result=None):
    client = AsyncMock()
    if result is None:
        result = {"images": [{"url": "https://fal.media/files/scene.jpg"}]}
    client.subscribe = AsyncMock(return_value=result)
    return client


def make_controller(clock=None, generate=None, **scheduler_kwargs):
    clock = clock or FakeClock(0)
    generate = generate or AsyncMock(return_value="https://fal.media/files/scene.jpg")
    kwargs = {"first_delay_ms": 60000, "interval_ms": 60000, "clock": clock}
    kwargs.update(scheduler_kwargs)
    scheduler = ImageScheduler(generate, **kwargs)
    factory = FakeSessionFactory()
    controller = CampaignController(
        credentials=make_mock_credential_service(),
        scheduler=scheduler,
        microphone=make_mock_microphone(),
        session_factory=factory,
        clock=clock,
    )
    return controller, factory


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    return _make_settings()


@pytest.fixture
def clock():
    return FakeClock(0)


@pytest.fixture
def mock_fal_client():
    return make_mock_fal_client()


@pytest_asyncio.fixture
async def controller_and_factory(clock):
    controller, factory = make_controller(clock=clock)
    yield controller, factory
    await controller.aclose()


@pytest_asyncio.fixture
async def app_with_mocks(mock_fal_client):
    """FastAPI app with vendors faked out."""
    from campaign_service.main import app

    settings = _make_settings()
    controller, factory = make_controller()
    app.state.settings = settings
    app.state.image_service = ImageService(settings, client=mock_fal_client)
    app.state.credential_service = make_mock_credential_service()
    app.state.campaign_controller = controller
    app.state.session_factory = factory
    yield app
    await controller.aclose()


@pytest_asyncio.fixture
async def app_no_services():
    """FastAPI app before any service was wired (503 paths)."""
    from campaign_service.main import app

    app.state.settings = _make_settings()
    app.state.image_service = None
    app.state.credential_service = None
    app.state.campaign_controller = None
    yield app


@pytest_asyncio.fixture
async def client(app_with_mocks):
    """AsyncClient hitting the app with mocked vendors."""
    transport = ASGITransport(app=app_with_mocks)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def client_no_services(app_no_services):
    transport = ASGITransport(app=app_no_services)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
