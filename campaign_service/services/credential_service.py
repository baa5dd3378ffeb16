import logging
from typing import Optional

import httpx

from ..errors import SessionConnectionError

logger = logging.getLogger(__name__)


class CredentialService:
    """Issues short-lived signed URLs for the voice conversation.

    The vendor API key never leaves the server; clients only ever see the
    signed WebSocket URL.
    """

    def __init__(self, settings, http: Optional[httpx.AsyncClient] = None, timeout_s: float = 10.0):
        self.settings = settings
        self._http = http
        self._owns_http = http is None
        self._timeout_s = timeout_s

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout_s)
        return self._http

    async def get_signed_url(self) -> str:
        if not self.settings.has_elevenlabs:
            raise SessionConnectionError("ElevenLabs agent is not configured")

        try:
            resp = await self._get_http().get(
                self.settings.get_signed_url_endpoint(),
                params={"agent_id": self.settings.elevenlabs_agent_id},
                headers={"xi-api-key": self.settings.elevenlabs_api_key},
            )
        except httpx.HTTPError as e:
            logger.error("Signed URL request failed: %s", e)
            raise SessionConnectionError("Failed to get signed URL") from e

        if resp.status_code >= 400:
            detail = resp.text[:500] if resp.text else f"HTTP {resp.status_code}"
            logger.error("Signed URL request rejected: %s - %s", resp.status_code, detail)
            raise SessionConnectionError("Failed to get signed URL")

        try:
            signed_url = resp.json().get("signed_url")
        except ValueError:
            signed_url = None
        if not signed_url:
            logger.error("Signed URL missing from vendor response")
            raise SessionConnectionError("Failed to get signed URL")
        return signed_url

    async def close(self):
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None
