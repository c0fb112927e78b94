"""Session state: the single source of truth for "is the user signed in".

SessionManager owns the credential store and is its only writer. Every
component that needs a token reads it through ``current_tokens()`` at the
moment it needs it, so there is no cached copy to go stale after a login or
refresh.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Protocol

from .storage import CredentialStore, TokenPair

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    LOGGED_OUT = "logged_out"
    LOGGED_IN = "logged_in"


class TokenStore(Protocol):
    def load(self) -> TokenPair | None: ...

    def save(self, pair: TokenPair) -> None: ...

    def clear(self) -> None: ...


SessionListener = Callable[[SessionState, "TokenPair | None"], None]


class SessionManager:
    """Login/logout state machine over a credential store.

    Usage:
        session = SessionManager(CredentialStore())

        unsubscribe = session.subscribe(lambda state, tokens: render(state))
        session.login(TokenPair("access", "refresh"))
        session.current_tokens()  # TokenPair("access", "refresh")
        session.logout()
    """

    def __init__(self, store: TokenStore | None = None):
        """Initialize the session, restoring any persisted pair.

        Args:
            store: Credential store (uses CredentialStore() if not provided)
        """
        self._store = store if store is not None else CredentialStore()
        self._tokens: TokenPair | None = self._store.load()
        self._listeners: list[SessionListener] = []
        if self._tokens is not None:
            logger.info("Restored persisted session")

    @property
    def state(self) -> SessionState:
        return SessionState.LOGGED_IN if self._tokens is not None else SessionState.LOGGED_OUT

    def current_tokens(self) -> TokenPair | None:
        return self._tokens

    def is_logged_in(self) -> bool:
        return self._tokens is not None

    def login(self, pair: TokenPair) -> None:
        """Install a new pair (initial sign-in or refresh).

        Persists first, then swaps the in-memory pair; the next outbound call
        sees the new access token.
        """
        if not isinstance(pair, TokenPair):
            raise TypeError("login() requires a TokenPair")
        refreshed = self._tokens is not None
        self._store.save(pair)
        self._tokens = pair
        logger.info("Session %s", "tokens replaced" if refreshed else "started")
        self._notify()

    def logout(self) -> None:
        """Clear storage and memory, then notify subscribers."""
        self._store.clear()
        if self._tokens is None:
            return
        self._tokens = None
        logger.info("Session ended")
        self._notify()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a state-change listener; returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        state = self.state
        tokens = self._tokens
        for listener in list(self._listeners):
            try:
                listener(state, tokens)
            except Exception:
                logger.exception("Session listener %r failed", listener)
