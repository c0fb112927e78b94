"""Authentication module for Rim Studio.

Provides token persistence, the session state machine, and the calls that
mint token pairs.

Usage:
    from rimstudio.auth import CredentialStore, SessionManager, TokenPair

    session = SessionManager(CredentialStore())
    session.login(TokenPair(access_token="...", refresh_token="..."))
"""

from .client import AuthClient
from .session import SessionListener, SessionManager, SessionState, TokenStore
from .storage import CredentialStore, MemoryCredentialStore, TokenPair

__all__ = [
    "AuthClient",
    "CredentialStore",
    "MemoryCredentialStore",
    "SessionListener",
    "SessionManager",
    "SessionState",
    "TokenPair",
    "TokenStore",
]
