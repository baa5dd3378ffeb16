import asyncio
import logging
import queue
import threading
from typing import Callable, Optional

from ..errors import SessionConnectionError

logger = logging.getLogger(__name__)


class LocalAudio:
    """Microphone capture and speaker playback on the host's default devices.

    PortAudio callbacks and the playback worker run on their own threads;
    everything they report is handed back to the event loop with
    ``call_soon_threadsafe``.
    """

    def __init__(self, sample_rate: int = 16000, block_ms: int = 250):
        self.sample_rate = sample_rate
        self.block_size = int(sample_rate * block_ms / 1000)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._input = None
        self._output = None
        self._out_q: "queue.Queue[bytes]" = queue.Queue()
        self._stop_event = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._speaking = False
        self._on_mode: Optional[Callable[[bool], None]] = None

    async def request_permission(self) -> None:
        """Fail with SessionConnectionError if no usable microphone is present."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._check_input)

    def _check_input(self):
        try:
            import sounddevice as sd

            sd.check_input_settings(channels=1, samplerate=self.sample_rate, dtype="int16")
        except Exception as e:
            logger.error("Microphone unavailable: %s", e)
            raise SessionConnectionError(f"Microphone access denied: {e}") from e

    def start(self, on_chunk: Callable[[bytes], None], on_mode: Callable[[bool], None]) -> None:
        import sounddevice as sd

        self._loop = asyncio.get_running_loop()
        self._on_mode = on_mode
        self._stop_event.clear()

        def _input_callback(indata, frames, time_info, status):
            if status:
                logger.debug("Input status: %s", status)
            self._loop.call_soon_threadsafe(on_chunk, bytes(indata))

        self._input = sd.RawInputStream(
            samplerate=self.sample_rate,
            channels=1,
            dtype="int16",
            blocksize=self.block_size,
            callback=_input_callback,
        )
        self._output = sd.RawOutputStream(
            samplerate=self.sample_rate,
            channels=1,
            dtype="int16",
        )
        self._input.start()
        self._output.start()
        self._worker = threading.Thread(target=self._playback_worker, daemon=True)
        self._worker.start()
        logger.info("Audio started (%d Hz)", self.sample_rate)

    def play(self, pcm: bytes) -> None:
        self._out_q.put(pcm)

    def interrupt(self) -> None:
        """Drop any queued agent audio."""
        while True:
            try:
                self._out_q.get_nowait()
            except queue.Empty:
                break

    def _playback_worker(self):
        while not self._stop_event.is_set():
            try:
                chunk = self._out_q.get(timeout=0.1)
            except queue.Empty:
                if self._speaking:
                    self._set_speaking(False)
                continue
            if not self._speaking:
                self._set_speaking(True)
            self._output.write(chunk)

    def _set_speaking(self, speaking: bool):
        self._speaking = speaking
        if self._loop and self._on_mode:
            self._loop.call_soon_threadsafe(self._on_mode, speaking)

    def stop(self) -> None:
        self._stop_event.set()
        self.interrupt()
        if self._worker:
            self._worker.join(timeout=1.0)
            self._worker = None
        for stream in (self._input, self._output):
            if stream is not None:
                stream.stop()
                stream.close()
        self._input = None
        self._output = None
        self._speaking = False
        logger.info("Audio stopped")
