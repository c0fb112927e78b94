"""Client for the backend's authentication endpoints.

Handles the two token-minting calls:
1. Exchange a Google ID token for an access + refresh token pair
2. Refresh the pair with the current refresh token

These calls go through their own HTTP client, never through
AuthenticatedTransport, so a failing refresh cannot trigger another refresh.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError as SchemaError

from ..config import ClientSettings
from ..errors import AuthError, SessionExpiredError, normalize_error_payload
from ..schemas import GoogleLoginResponse, RefreshResponse
from .storage import TokenPair

logger = logging.getLogger(__name__)


class AuthClient:
    """Unauthenticated calls that produce a TokenPair.

    Usage:
        async with AuthClient(settings) as auth:
            pair = await auth.exchange_google_token(id_token)
            pair = await auth.refresh(pair.refresh_token)
    """

    def __init__(
        self,
        settings: ClientSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "AuthClient":
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def exchange_google_token(self, id_token: str) -> TokenPair:
        """Exchange a Google ID token for a token pair.

        Raises:
            AuthError: If the backend rejects the token or answers malformed
        """
        if not id_token:
            raise AuthError("Google ID token is required")

        response = await self._client.post(
            self._settings.google_login_path,
            json={"id_token": id_token},
        )
        if response.status_code != 200:
            raise AuthError(
                f"Sign-in failed: {self._describe(response)}",
                status_code=response.status_code,
                response=response,
            )

        try:
            return self._parse(response, GoogleLoginResponse)
        except (ValueError, SchemaError) as e:
            raise AuthError(
                f"Invalid sign-in response: {e}",
                status_code=response.status_code,
                response=response,
            ) from e

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Mint a new pair from a refresh token.

        Raises:
            SessionExpiredError: If the backend rejects the refresh token
                or answers with a malformed pair
            httpx.TransportError: On network failure
        """
        response = await self._client.post(
            self._settings.refresh_path,
            json={"refresh_token": refresh_token},
        )
        if response.status_code != 200:
            logger.info("Token refresh rejected with status %s", response.status_code)
            raise SessionExpiredError(
                status_code=response.status_code,
                response=response,
            )

        try:
            return self._parse(response, RefreshResponse)
        except (ValueError, SchemaError) as e:
            logger.warning("Token refresh returned an invalid payload: %s", e)
            raise SessionExpiredError(
                status_code=response.status_code,
                response=response,
            ) from e

    @staticmethod
    def _parse(response: httpx.Response, schema: type[BaseModel]) -> TokenPair:
        data: Any = response.json()
        parsed = schema.model_validate(data)
        return TokenPair(
            access_token=parsed.access_token,
            refresh_token=parsed.refresh_token,
        )

    @staticmethod
    def _describe(response: httpx.Response) -> str:
        try:
            body = response.json() if response.content else None
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("detail") is not None:
            return normalize_error_payload(body["detail"]).message
        return f"status {response.status_code}"
