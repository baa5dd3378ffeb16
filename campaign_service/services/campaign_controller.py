import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from ..errors import CampaignError, InvalidTransition, SessionConnectionError
from ..models.campaign import CampaignSnapshot
from ..models.transcripts import Speaker
from .image_scheduler import ImageScheduler
from .transcript_service import TranscriptStore, now_ms
from .voice_session import VoiceEvent, VoiceSession

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class CampaignController:
    """Owns the lifecycle of one voice campaign at a time.

    ``start()`` and ``stop()`` are the only external mutators. Vendor callbacks
    never touch state directly: they are queued as ``VoiceEvent`` items and
    applied one at a time by a single dispatch task, in delivery order.
    Events from a session that has since been stopped are discarded.
    """

    def __init__(
        self,
        credentials,
        scheduler: ImageScheduler,
        microphone,
        session_factory: Callable[[], VoiceSession],
        clock: Callable[[], int] = now_ms,
    ):
        self.credentials = credentials
        self.scheduler = scheduler
        self.microphone = microphone
        self._session_factory = session_factory
        self._clock = clock

        self.state = SessionState.IDLE
        self.error: Optional[str] = None
        self.is_speaking = False
        self.store = TranscriptStore(clock)

        self._session: Optional[VoiceSession] = None
        self._attempt = 0
        self._events: asyncio.Queue = asyncio.Queue()
        self._dispatcher: Optional[asyncio.Task] = None
        self._listeners: set[asyncio.Queue] = set()

        scheduler.on_change = self._notify

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(self) -> CampaignSnapshot:
        if self.state not in (SessionState.IDLE, SessionState.ERROR):
            raise InvalidTransition(f"Cannot start campaign while {self.state.value}")

        self._attempt += 1
        attempt = self._attempt
        self.error = None
        self.is_speaking = False
        self.store = TranscriptStore(self._clock)
        self._set_state(SessionState.CONNECTING)
        self._ensure_dispatcher()

        session = None
        try:
            signed_url = await self.credentials.get_signed_url()
            if self._superseded(attempt):
                return self.snapshot()

            await self.microphone.request_permission()
            if self._superseded(attempt):
                return self.snapshot()

            session = self._session_factory()
            self._session = session
            await session.open(signed_url, self._sink(attempt))
        except Exception as e:
            if isinstance(e, CampaignError):
                message = e.message
            else:
                message = str(e) or "Failed to start conversation"
            logger.error("Failed to start conversation: %s", message)
            if attempt != self._attempt:
                await self._close_session(session)
                return self.snapshot()
            self._session = None
            await self._close_session(session)
            self.error = message
            self._set_state(SessionState.IDLE)
            if isinstance(e, CampaignError):
                raise
            raise SessionConnectionError(message) from e

        if self._superseded(attempt):
            # stop() ran while the session was opening
            await self._close_session(session)
        return self.snapshot()

    async def stop(self) -> CampaignSnapshot:
        if self.state not in (SessionState.CONNECTING, SessionState.CONNECTED):
            return self.snapshot()

        self._attempt += 1
        session, self._session = self._session, None
        self.scheduler.disarm()
        self.is_speaking = False
        self._set_state(SessionState.IDLE)
        await self._close_session(session)
        return self.snapshot()

    async def aclose(self) -> None:
        """Teardown: stop the campaign and the dispatcher."""
        await self.stop()
        self.scheduler.disarm()
        if self._dispatcher:
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
            self._dispatcher = None

    # ------------------------------------------------------------------
    # Event channel
    # ------------------------------------------------------------------

    def _sink(self, attempt: int):
        def emit(event: VoiceEvent) -> None:
            self._events.put_nowait((attempt, event))
        return emit

    def _ensure_dispatcher(self):
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.create_task(self._dispatch_loop())

    async def _dispatch_loop(self):
        while True:
            attempt, event = await self._events.get()
            if attempt != self._attempt:
                logger.debug("Dropping %s event from a closed session", event.kind)
                continue
            try:
                await self.dispatch(event)
            except Exception as e:
                logger.error("Error handling %s event: %s", event.kind, e)

    async def dispatch(self, event: VoiceEvent) -> None:
        if event.kind == "connect":
            if self.state == SessionState.CONNECTING:
                logger.info("Connected to voice agent")
                self._set_state(SessionState.CONNECTED)
                self.scheduler.arm(self.store)

        elif event.kind == "disconnect":
            logger.info("Disconnected from voice agent")
            self.scheduler.disarm()
            session, self._session = self._session, None
            self.is_speaking = False
            if self.state in (SessionState.CONNECTING, SessionState.CONNECTED):
                self._set_state(SessionState.IDLE)
            else:
                self._notify()
            await self._close_session(session)

        elif event.kind == "error":
            logger.error("Conversation error: %s", event.text)
            self.error = event.text or "Connection error occurred"
            self.scheduler.disarm()
            self.is_speaking = False
            session, self._session = self._session, None
            self._set_state(SessionState.ERROR)
            await self._close_session(session)

        elif event.kind == "mode":
            self.is_speaking = event.mode == "speaking"
            self._notify()

        elif event.kind == "message":
            if self.state == SessionState.CONNECTED and event.text:
                speaker = Speaker.from_source(event.role)
                logger.info("Message from %s: %s", event.role, event.text[:80])
                self.store.append(speaker, event.text)
                self._notify()

        else:
            logger.debug("Unknown voice event: %s", event.kind)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _superseded(self, attempt: int) -> bool:
        return attempt != self._attempt or self.state != SessionState.CONNECTING

    async def _close_session(self, session: Optional[VoiceSession]):
        if session is None:
            return
        try:
            await session.close()
        except Exception as e:
            logger.warning("Error closing voice session: %s", e)

    def _set_state(self, state: SessionState):
        if state != self.state:
            logger.info("Campaign state: %s -> %s", self.state.value, state.value)
        self.state = state
        self._notify()

    @property
    def status_text(self) -> Optional[str]:
        if self.state != SessionState.CONNECTED:
            return None
        if self.is_speaking:
            return "Dungeon Master is speaking..."
        return "Listening to the party..."

    def snapshot(self) -> CampaignSnapshot:
        return CampaignSnapshot(
            state=self.state.value,
            is_speaking=self.is_speaking,
            status_text=self.status_text,
            error=self.error,
            current_image=self.scheduler.current_image,
            is_generating=self.scheduler.is_generating,
            last_image_time=self.scheduler.last_image_time,
            utterances=self.store.all(),
        )

    # ------------------------------------------------------------------
    # Listeners (presentation layer)
    # ------------------------------------------------------------------

    def subscribe(self, maxsize: int = 16) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        q.put_nowait(self.snapshot())
        self._listeners.add(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        self._listeners.discard(q)

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for q in self._listeners:
            if q.full():
                # slow consumer: only the newest snapshot matters
                q.get_nowait()
            q.put_nowait(snap)
