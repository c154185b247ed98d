"""
Auth lookups against the hosted backend.

Sign-in, tokens and sessions are entirely the backend's business; this
module only asks it who a bearer token belongs to.
"""

import logging
from typing import Optional

import httpx

from clinic_booking.config import get_settings

logger = logging.getLogger(__name__)


class AuthClient:
    """Resolves access tokens to user emails via GET /auth/v1/user."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
    ):
        settings = get_settings()
        self.base_url = base_url or settings.auth_url
        self.api_key = api_key if api_key is not None else settings.supabase_anon_key
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_user_email(self, access_token: str) -> Optional[str]:
        """Return the email of the token's user, or None if the token is invalid.

        Args:
            access_token: Bearer token issued by the backend

        Returns:
            Email address or None
        """
        client = await self._get_client()

        try:
            response = await client.get(
                "/user",
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {access_token}",
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"Failed to resolve access token: {e}")
            return None

        if response.status_code != 200:
            logger.debug(f"Token rejected by auth endpoint: {response.status_code}")
            return None

        return response.json().get("email")
