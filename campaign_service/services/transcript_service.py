import logging
import time
from typing import Callable

from ..models.transcripts import Speaker, Utterance

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class TranscriptStore:
    """Append-only, in-memory log of spoken utterances for one session.

    Timestamps are assigned at append time and never go backwards, so append
    order and timestamp order are the same. Nothing is persisted; a new store
    is created for every session.
    """

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._clock = clock
        self._utterances: list[Utterance] = []

    def __len__(self) -> int:
        return len(self._utterances)

    def append(self, speaker: Speaker, text: str) -> Utterance:
        timestamp = self._clock()
        if self._utterances and timestamp < self._utterances[-1].timestamp:
            timestamp = self._utterances[-1].timestamp
        utterance = Utterance(speaker=speaker, text=text, timestamp=timestamp)
        self._utterances.append(utterance)
        logger.debug("Transcript append [%s] %s", speaker.value, text[:50])
        return utterance

    def all(self) -> list[Utterance]:
        return list(self._utterances)

    def since(self, cutoff: int) -> list[Utterance]:
        """Return the utterances with ``timestamp > cutoff``, in order."""
        # Timestamps are non-decreasing, so the match is always a suffix.
        idx = len(self._utterances)
        while idx > 0 and self._utterances[idx - 1].timestamp > cutoff:
            idx -= 1
        return self._utterances[idx:]
