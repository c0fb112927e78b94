"""Rim Studio client core: session lifecycle and authenticated API calls."""

from .auth import CredentialStore, MemoryCredentialStore, SessionManager, SessionState, TokenPair
from .client import RimStudioClient
from .config import ClientSettings, load_settings
from .errors import (
    ApiError,
    AuthError,
    ConfigurationError,
    MissingImageError,
    NormalizedError,
    RimStudioError,
    SessionExpiredError,
    TransportError,
    ValidationError,
    describe_error,
    normalize_error_payload,
)
from .generations import GenerationClient, GenerationJob, GenerationStatus, ImageAsset
from .transport import AuthenticatedTransport, RequestSpec

__version__ = "0.1.0"

__all__ = [
    "ApiError",
    "AuthError",
    "AuthenticatedTransport",
    "ClientSettings",
    "ConfigurationError",
    "CredentialStore",
    "GenerationClient",
    "GenerationJob",
    "GenerationStatus",
    "ImageAsset",
    "MemoryCredentialStore",
    "MissingImageError",
    "NormalizedError",
    "RequestSpec",
    "RimStudioClient",
    "RimStudioError",
    "SessionExpiredError",
    "SessionManager",
    "SessionState",
    "TokenPair",
    "TransportError",
    "ValidationError",
    "describe_error",
    "load_settings",
    "normalize_error_payload",
]
