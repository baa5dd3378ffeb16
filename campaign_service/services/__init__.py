from .campaign_controller import CampaignController, SessionState
from .credential_service import CredentialService
from .image_scheduler import ImageScheduler, build_prompt
from .image_service import ImageService, extract_image_url
from .transcript_service import TranscriptStore
from .voice_session import ElevenLabsVoiceSession, VoiceEvent

__all__ = [
    "CampaignController",
    "SessionState",
    "CredentialService",
    "ImageScheduler",
    "build_prompt",
    "ImageService",
    "extract_image_url",
    "TranscriptStore",
    "ElevenLabsVoiceSession",
    "VoiceEvent",
]
