import logging

import httpx

from config import Settings
from errors import ServiceError, UpstreamError

logger = logging.getLogger(__name__)


class AvatarTokenClient:
    """Issues short-lived streaming tokens for the interview avatar (HeyGen)."""

    def __init__(self, api_key: str | None, base_url: str, timeout: float = 15.0, transport: httpx.AsyncBaseTransport | None = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "AvatarTokenClient":
        return cls(settings.heygen_api_key, settings.heygen_base_url, settings.heygen_timeout_seconds)

    async def create_token(self) -> str:
        if not self.api_key:
            logger.error("[AVATAR] HEYGEN_API_KEY missing")
            raise ServiceError("HEYGEN_API_KEY missing")

        url = f"{self.base_url}/v1/streaming.create_token"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, headers=headers, json={})
        except httpx.HTTPError as e:
            logger.error(f"[AVATAR] create_token request failed: {e}")
            raise UpstreamError("Failed to retrieve access token") from e

        if response.is_error:
            logger.error(f"[AVATAR] create_token error status={response.status_code} body={response.text[:500]}")
            raise UpstreamError(f"Avatar token endpoint returned {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            payload = None
        token = None
        if isinstance(payload, dict):
            data = payload.get("data")
            if isinstance(data, dict):
                token = data.get("token")
            token = token or payload.get("token")
        if not token:
            logger.error(f"[AVATAR] Token not found in response: {response.text[:500]}")
            raise UpstreamError("Token not found")
        return token
