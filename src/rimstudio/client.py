"""Rim Studio client: one process-wide instance wiring the core together.

Usage:
    async with RimStudioClient() as studio:
        if not studio.session.is_logged_in():
            await studio.sign_in_with_google(id_token)
        job = await studio.generations.generate(car, rim)
"""

from __future__ import annotations

import logging

import httpx

from .auth.client import AuthClient
from .auth.session import SessionManager, TokenStore
from .auth.storage import CredentialStore, TokenPair
from .config import ClientSettings, load_settings
from .generations import GenerationClient
from .transport import AuthenticatedTransport

logger = logging.getLogger(__name__)


class RimStudioClient:
    """Owns the session, the authenticated transport and the workflow client."""

    def __init__(
        self,
        settings: ClientSettings | None = None,
        store: TokenStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            settings: Client settings (loaded from env/.env if not provided)
            store: Credential store (file store under settings.config_dir if not provided)
            transport: Optional httpx transport shared by all HTTP clients

        Raises:
            ConfigurationError: If settings loaded from the environment are invalid
        """
        self.settings = settings if settings is not None else load_settings()
        self.session = SessionManager(
            store if store is not None else CredentialStore(self.settings.config_dir)
        )
        self.auth = AuthClient(self.settings, transport=transport)
        self.transport = AuthenticatedTransport(
            self.settings,
            self.session,
            self.auth.refresh,
            transport=transport,
        )
        self.generations = GenerationClient(self.settings, self.transport)
        self._closed = False

    async def __aenter__(self) -> "RimStudioClient":
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def sign_in_with_google(self, id_token: str) -> TokenPair:
        """Exchange a Google ID token and start the session.

        Raises:
            AuthError: If the backend rejects the token
        """
        pair = await self.auth.exchange_google_token(id_token)
        self.session.login(pair)
        return pair

    def sign_out(self) -> None:
        self.session.logout()

    async def aclose(self) -> None:
        """Close HTTP clients. The session stays persisted for the next start."""
        if self._closed:
            return
        self._closed = True
        await self.transport.aclose()
        await self.auth.aclose()
        logger.debug("Client closed")
