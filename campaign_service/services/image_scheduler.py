import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Optional

from ..errors import CampaignError
from ..models.transcripts import Utterance
from .transcript_service import TranscriptStore, now_ms

logger = logging.getLogger(__name__)


def build_prompt(utterances: Iterable[Utterance], max_chars: int = 500) -> str:
    """Join utterance texts with single spaces, keeping the trailing ``max_chars``."""
    text = " ".join(u.text for u in utterances)
    if len(text) > max_chars:
        text = text[-max_chars:]
    return text


class ImageScheduler:
    """Decides when to ask for a new illustration and with which text.

    After ``arm()`` a one-shot timer fires once with the whole transcript, then
    a recurring timer fires with only the utterances of the last
    ``window_ms``. A tick with nothing to say is skipped but the timer stays
    armed. Image requests run as independent tasks: ticks never wait for them
    and ``disarm()`` does not cancel them.

    Overlapping requests are sequenced; a response older than the image
    already on display is dropped.
    """

    def __init__(
        self,
        generate: Callable[[str], Awaitable[str]],
        *,
        first_delay_ms: int = 8000,
        interval_ms: int = 8000,
        window_ms: int = 8000,
        max_chars: int = 500,
        clock: Callable[[], int] = now_ms,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self._generate = generate
        self.first_delay_ms = first_delay_ms
        self.interval_ms = interval_ms
        self.window_ms = window_ms
        self.max_chars = max_chars
        self._clock = clock
        self.on_change = on_change

        self._store: Optional[TranscriptStore] = None
        self._first_timer: Optional[asyncio.Task] = None
        self._recurring_timer: Optional[asyncio.Task] = None
        self._requests: set[asyncio.Task] = set()

        self.last_image_time: Optional[int] = None
        self.current_image: Optional[str] = None
        self._next_seq = 0
        self._shown_seq = -1

    @classmethod
    def from_settings(cls, settings, generate, **kwargs) -> "ImageScheduler":
        return cls(
            generate,
            first_delay_ms=settings.first_image_delay_ms,
            interval_ms=settings.image_interval_ms,
            window_ms=settings.recent_window_ms,
            max_chars=settings.prompt_max_chars,
            **kwargs,
        )

    @property
    def armed(self) -> bool:
        return any(
            t is not None and not t.done()
            for t in (self._first_timer, self._recurring_timer)
        )

    @property
    def in_flight(self) -> int:
        return len(self._requests)

    @property
    def is_generating(self) -> bool:
        return bool(self._requests)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def arm(self, store: TranscriptStore) -> None:
        """Start the schedule for a freshly connected session."""
        self.disarm()
        self._store = store
        self._first_timer = asyncio.create_task(self._run_first_shot())
        logger.info("Image schedule armed (first in %dms, then every %dms)",
                    self.first_delay_ms, self.interval_ms)

    def disarm(self) -> None:
        """Cancel both timers. Safe to call any number of times."""
        cancelled = False
        for task in (self._first_timer, self._recurring_timer):
            if task is not None and not task.done():
                task.cancel()
                cancelled = True
        self._first_timer = None
        self._recurring_timer = None
        if cancelled:
            logger.info("Image schedule disarmed")

    async def _run_first_shot(self):
        await asyncio.sleep(self.first_delay_ms / 1000)
        self.fire_first()
        self._recurring_timer = asyncio.create_task(self._run_recurring())

    async def _run_recurring(self):
        while True:
            await asyncio.sleep(self.interval_ms / 1000)
            self.tick()

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def fire_first(self) -> Optional[asyncio.Task]:
        """First illustration: the whole transcript sets the scene."""
        utterances = self._store.all() if self._store else []
        if not utterances:
            logger.info("[Image Gen] No messages yet, skipping")
            return None
        return self._request(build_prompt(utterances, self.max_chars))

    def tick(self) -> Optional[asyncio.Task]:
        """Recurring illustration: only what was said in the last window."""
        cutoff = self._clock() - self.window_ms
        utterances = self._store.since(cutoff) if self._store else []
        if not utterances:
            logger.info("[Image Gen] No recent messages in last %dms, skipping", self.window_ms)
            return None
        return self._request(build_prompt(utterances, self.max_chars))

    def _request(self, prompt: str) -> asyncio.Task:
        seq = self._next_seq
        self._next_seq += 1
        self.last_image_time = self._clock()
        logger.info("[Image Gen] Request #%d prompt: %s...", seq, prompt[:100])

        task = asyncio.create_task(self._run_request(seq, prompt))
        self._requests.add(task)
        task.add_done_callback(self._request_done)
        self._changed()
        return task

    def _request_done(self, task: asyncio.Task) -> None:
        self._requests.discard(task)
        self._changed()

    async def _run_request(self, seq: int, prompt: str) -> Optional[str]:
        try:
            url = await self._generate(prompt)
        except CampaignError as e:
            logger.warning("[Image Gen] Request #%d failed: %s", seq, e.message)
            return None
        except Exception as e:
            logger.error("[Image Gen] Request #%d error: %s", seq, e)
            return None

        if not url:
            logger.warning("[Image Gen] Request #%d returned no image URL", seq)
            return None
        if seq < self._shown_seq:
            logger.info("[Image Gen] Dropping stale image #%d (showing #%d)", seq, self._shown_seq)
            return None

        logger.info("[Image Gen] Setting new image #%d: %s", seq, url)
        self._shown_seq = seq
        self.current_image = url
        return url

    async def wait_idle(self) -> None:
        """Wait for all outstanding image requests to settle."""
        if self._requests:
            await asyncio.gather(*list(self._requests), return_exceptions=True)

    def _changed(self) -> None:
        if self.on_change:
            self.on_change()
