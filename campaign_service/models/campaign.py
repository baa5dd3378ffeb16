from pydantic import BaseModel
from typing import Optional

from .transcripts import Utterance


class ImageRequest(BaseModel):
    prompt: Optional[str] = None


class ImageResponse(BaseModel):
    imageUrl: str


class SignedUrlResponse(BaseModel):
    signedUrl: str


class CampaignSnapshot(BaseModel):
    state: str
    is_speaking: bool = False
    status_text: Optional[str] = None
    error: Optional[str] = None
    current_image: Optional[str] = None
    is_generating: bool = False
    last_image_time: Optional[int] = None
    utterances: list[Utterance] = []
