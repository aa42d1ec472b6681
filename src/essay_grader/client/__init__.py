"""Client-side session handling for the essay grading API."""

from .credential_store import CredentialStore
from .session_client import RequestEnvelope, SessionClient, raise_for_error

__all__ = [
    "CredentialStore",
    "RequestEnvelope",
    "SessionClient",
    "raise_for_error",
]
