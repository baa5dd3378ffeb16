from .campaign import (
    ImageRequest,
    ImageResponse,
    SignedUrlResponse,
    CampaignSnapshot,
)
from .transcripts import Speaker, Utterance, TranscriptResponse

__all__ = [
    "ImageRequest",
    "ImageResponse",
    "SignedUrlResponse",
    "CampaignSnapshot",
    "Speaker",
    "Utterance",
    "TranscriptResponse",
]
