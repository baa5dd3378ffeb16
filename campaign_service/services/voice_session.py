import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import websockets
from websockets.exceptions import ConnectionClosedError, WebSocketException

from ..errors import SessionConnectionError
from .audio import LocalAudio

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoiceEvent:
    """One inbound event from the voice vendor.

    kind is one of: connect, disconnect, error, mode, message.
    """

    kind: str
    role: Optional[str] = None  # "user" | "ai"
    text: Optional[str] = None
    mode: Optional[str] = None  # "speaking" | "listening"

    @classmethod
    def connect(cls) -> "VoiceEvent":
        return cls("connect")

    @classmethod
    def disconnect(cls) -> "VoiceEvent":
        return cls("disconnect")

    @classmethod
    def error(cls, message: str) -> "VoiceEvent":
        return cls("error", text=message)

    @classmethod
    def mode_change(cls, mode: str) -> "VoiceEvent":
        return cls("mode", mode=mode)

    @classmethod
    def message(cls, role: str, text: str) -> "VoiceEvent":
        return cls("message", role=role, text=text)


EventSink = Callable[[VoiceEvent], None]


class VoiceSession(Protocol):
    """Real-time voice conversation with the Dungeon Master agent."""

    async def open(self, signed_url: str, emit: EventSink) -> None:
        """
        Open the session. Events are delivered in order through ``emit``.
        """
        ...

    async def close(self) -> None:
        ...


class ElevenLabsVoiceSession:
    """Conversational agent session over the vendor's signed WebSocket URL."""

    def __init__(self, audio: Optional[LocalAudio] = None):
        self._audio = audio or LocalAudio()
        self._ws = None
        self._emit: Optional[EventSink] = None
        self._receiver: Optional[asyncio.Task] = None
        self._sender: Optional[asyncio.Task] = None
        self._outgoing: asyncio.Queue = asyncio.Queue()
        self._audio_started = False

    async def open(self, signed_url: str, emit: EventSink) -> None:
        self._emit = emit
        try:
            self._ws = await websockets.connect(signed_url, max_size=None)
            await self._ws.send(json.dumps({"type": "conversation_initiation_client_data"}))
        except (OSError, WebSocketException) as e:
            logger.error("Voice session open failed: %s", e)
            raise SessionConnectionError(f"Failed to open voice session: {e}") from e

        self._receiver = asyncio.create_task(self._receive_loop())
        self._sender = asyncio.create_task(self._send_loop())

    async def close(self) -> None:
        if self._sender:
            self._sender.cancel()
            self._sender = None
        if self._ws is not None:
            await self._ws.close()
        if self._receiver:
            try:
                await self._receiver
            except asyncio.CancelledError:
                pass
            self._receiver = None
        self._stop_audio()

    async def _receive_loop(self):
        try:
            async for raw in self._ws:
                try:
                    msg = json.loads(raw)
                except (TypeError, ValueError):
                    logger.debug("Ignoring non-JSON frame")
                    continue
                await self._handle(msg)
        except ConnectionClosedError as e:
            logger.error("Voice session dropped: %s", e)
            self._emit(VoiceEvent.error(f"Connection error occurred: {e}"))
        finally:
            if self._sender:
                self._sender.cancel()
                self._sender = None
            self._stop_audio()
            self._emit(VoiceEvent.disconnect())

    async def _send_loop(self):
        while True:
            chunk = await self._outgoing.get()
            try:
                await self._ws.send(json.dumps({
                    "user_audio_chunk": base64.b64encode(chunk).decode("ascii"),
                }))
            except WebSocketException as e:
                logger.debug("Audio send stopped: %s", e)
                return

    async def _handle(self, msg: dict):
        if not isinstance(msg, dict):
            logger.debug("Ignoring non-object frame")
            return
        msg_type = msg.get("type")

        if msg_type == "conversation_initiation_metadata":
            try:
                self._audio.start(on_chunk=self._outgoing.put_nowait, on_mode=self._on_mode)
                self._audio_started = True
            except Exception as e:
                logger.error("Audio start failed: %s", e)
                self._emit(VoiceEvent.error(f"Audio unavailable: {e}"))
                await self._ws.close()
                return
            self._emit(VoiceEvent.connect())

        elif msg_type == "user_transcript":
            text = (msg.get("user_transcription_event") or {}).get("user_transcript")
            if text:
                self._emit(VoiceEvent.message("user", text))

        elif msg_type == "agent_response":
            text = (msg.get("agent_response_event") or {}).get("agent_response")
            if text:
                self._emit(VoiceEvent.message("ai", text))

        elif msg_type == "audio":
            audio_b64 = (msg.get("audio_event") or {}).get("audio_base_64")
            if audio_b64 and self._audio_started:
                self._audio.play(base64.b64decode(audio_b64))

        elif msg_type == "interruption":
            self._audio.interrupt()

        elif msg_type == "ping":
            event_id = (msg.get("ping_event") or {}).get("event_id")
            await self._ws.send(json.dumps({"type": "pong", "event_id": event_id}))

        else:
            logger.debug("Unhandled voice event: %s", msg_type)

    def _on_mode(self, speaking: bool):
        self._emit(VoiceEvent.mode_change("speaking" if speaking else "listening"))

    def _stop_audio(self):
        if self._audio_started:
            self._audio.stop()
            self._audio_started = False
