from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Speaker(str, Enum):
    DM = "Dungeon Master"
    TEAM = "Team"

    @classmethod
    def from_source(cls, source: str) -> "Speaker":
        """Map a voice vendor message source ("ai" / "user") to a speaker."""
        return cls.DM if source == "ai" else cls.TEAM


class Utterance(BaseModel):
    model_config = ConfigDict(frozen=True)

    speaker: Speaker
    text: str = Field(min_length=1)
    timestamp: int  # epoch milliseconds


class TranscriptResponse(BaseModel):
    utterances: list[Utterance]
    count: int
