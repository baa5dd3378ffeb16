from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional

IMAGE_SIZE_PRESETS = (
    "square_hd",
    "square",
    "portrait_4_3",
    "portrait_16_9",
    "landscape_4_3",
    "landscape_16_9",
)


class CampaignSettings(BaseSettings):
    """Campaign service configuration.

    Two vendors are involved:
      fal        – image synthesis (FLUX schnell by default)
      elevenlabs – real-time conversational voice agent (the Dungeon Master)

    Timer and prompt settings drive the illustration schedule and are in
    milliseconds / characters.
    """

    fal_key: Optional[str] = None
    fal_model: str = "fal-ai/flux/schnell"
    image_size: str = "landscape_16_9"
    image_inference_steps: int = 4
    image_count: int = 1
    image_safety_checker: bool = False

    elevenlabs_api_key: Optional[str] = None
    elevenlabs_agent_id: Optional[str] = None
    elevenlabs_api_url: str = "https://api.elevenlabs.io"

    first_image_delay_ms: int = 8000
    image_interval_ms: int = 8000
    recent_window_ms: int = 8000
    prompt_max_chars: int = 500

    audio_sample_rate: int = 16000

    campaign_service_port: int = 8000
    campaign_service_token: Optional[str] = None

    model_config = {"env_prefix": "", "case_sensitive": False}

    @field_validator("image_size")
    @classmethod
    def validate_image_size(cls, v: str) -> str:
        if v not in IMAGE_SIZE_PRESETS:
            raise ValueError(f"Invalid image size: {v!r} (expected one of {', '.join(IMAGE_SIZE_PRESETS)})")
        return v

    @field_validator(
        "first_image_delay_ms",
        "image_interval_ms",
        "recent_window_ms",
        "prompt_max_chars",
        "image_inference_steps",
        "image_count",
        "audio_sample_rate",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"must be positive, got {v}")
        return v

    @property
    def has_fal(self) -> bool:
        return bool(self.fal_key)

    @property
    def has_elevenlabs(self) -> bool:
        """True when both the API key and the agent id are configured."""
        return bool(self.elevenlabs_api_key) and bool(self.elevenlabs_agent_id)

    def get_signed_url_endpoint(self) -> str:
        """Return the vendor REST endpoint that issues signed conversation URLs."""
        return f"{self.elevenlabs_api_url.rstrip('/')}/v1/convai/conversation/get_signed_url"
