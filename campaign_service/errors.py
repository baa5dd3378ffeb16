from typing import Any, Optional


class CampaignError(Exception):
    """Base error for the campaign service.

    Each subclass maps to an HTTP status so route handlers can let the
    exception propagate and have it rendered as ``{"error": ...}``.
    """

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class InvalidInput(CampaignError):
    status_code = 400


class UpstreamEmpty(CampaignError):
    """Vendor call succeeded but no image URL could be extracted."""

    def __init__(self, message: str = "No image generated", result: Optional[Any] = None):
        super().__init__(message)
        self.result = result

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.result is not None:
            body["result"] = self.result
        return body


class UpstreamError(CampaignError):
    """Vendor call raised."""


class SessionConnectionError(CampaignError):
    """Credential fetch, microphone check or session open failed."""

    status_code = 502


class InvalidTransition(CampaignError):
    status_code = 409
