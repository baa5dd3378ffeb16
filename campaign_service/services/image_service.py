import json
import logging
from typing import Any, Optional

import fal_client

from ..errors import InvalidInput, UpstreamEmpty, UpstreamError

logger = logging.getLogger(__name__)

STYLE_PREAMBLE = (
    "Fantasy RPG illustration, Dungeons & Dragons style, mystical atmosphere, "
    "detailed digital painting, dramatic lighting, epic scene: "
)


def enhance_prompt(prompt: str) -> str:
    return f"{STYLE_PREAMBLE}{prompt}"


def extract_image_url(result: Any) -> Optional[str]:
    """Return the first image URL from a vendor result.

    Two shapes are seen in practice: ``{"data": {"images": [{"url": ...}]}}``
    and ``{"images": [{"url": ...}]}``.
    """
    if not isinstance(result, dict):
        return None
    data = result.get("data")
    for container in (data if isinstance(data, dict) else None, result):
        if not container:
            continue
        images = container.get("images")
        if isinstance(images, list) and images:
            first = images[0]
            if isinstance(first, dict) and first.get("url"):
                return first["url"]
    return None


class ImageService:
    """Forwards illustration prompts to the image vendor.

    The call waits for the vendor's queue to finish; no streaming or partial
    results. Exactly one URL is returned on success.
    """

    def __init__(self, settings, client: Optional[fal_client.AsyncClient] = None):
        self.settings = settings
        self._client = client or fal_client.AsyncClient(key=settings.fal_key)

    def build_arguments(self, prompt: str) -> dict:
        return {
            "prompt": enhance_prompt(prompt),
            "image_size": self.settings.image_size,
            "num_inference_steps": self.settings.image_inference_steps,
            "num_images": self.settings.image_count,
            "enable_safety_checker": self.settings.image_safety_checker,
        }

    async def generate(self, prompt: Optional[str]) -> str:
        if not prompt:
            raise InvalidInput("Prompt is required")

        arguments = self.build_arguments(prompt)
        logger.info("Generating image with prompt: %s...", arguments["prompt"][:100])

        try:
            result = await self._client.subscribe(self.settings.fal_model, arguments=arguments)
        except Exception as e:
            logger.error("Error generating image: %s", e)
            raise UpstreamError("Failed to generate image") from e

        logger.debug("Image vendor result: %s", json.dumps(result, indent=2, default=str))

        image_url = extract_image_url(result)
        if not image_url:
            logger.error("No image URL found in result: %s", result)
            raise UpstreamEmpty("No image generated", result=result)

        logger.info("Generated image URL: %s", image_url)
        return image_url
