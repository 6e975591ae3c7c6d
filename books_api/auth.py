"""
API key authentication for the book endpoints.

The header check lives in one FastAPI dependency; the comparison itself
is delegated to a CredentialVerifier so other schemes can be plugged in.
"""

import hashlib
import re
import secrets
from typing import Iterable, List, Optional, Protocol

import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader

from books_api.config import ServiceConfig
from books_api.errors import AuthError

logger = structlog.get_logger(__name__)

API_KEY_HEADER = "X-API-Key"

# Security scheme; missing headers are reported by verify_api_key, not FastAPI
api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)

SHA256_HEX = re.compile(r"[0-9a-f]{64}")


class CredentialVerifier(Protocol):
    """Decides whether a presented API key is acceptable."""

    def verify(self, presented: str) -> bool:
        ...


class StaticKeyVerifier:
    """Exact match against a single shared secret."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("secret must not be empty")
        self._secret = secret.encode("utf-8")

    def verify(self, presented: str) -> bool:
        return secrets.compare_digest(presented.encode("utf-8"), self._secret)


class HashedKeyVerifier:
    """
    Match against SHA-256 hex digests of accepted keys.

    Lets several clients hold their own key and keeps plaintext keys out of
    the configuration.
    """

    def __init__(self, digests: Iterable[str]):
        self._digests: List[str] = [d.strip().lower() for d in digests if d.strip()]
        if not self._digests:
            raise ValueError("at least one key digest is required")
        for digest in self._digests:
            if not SHA256_HEX.fullmatch(digest):
                raise ValueError(f"not a SHA-256 hex digest: {digest[:8]}...")

    @staticmethod
    def hash_key(api_key: str) -> str:
        """Digest format expected in the configuration."""
        return hashlib.sha256(api_key.encode("utf-8")).hexdigest()

    def verify(self, presented: str) -> bool:
        digest = self.hash_key(presented)
        # Check every digest so timing does not reveal which one matched
        matches = [secrets.compare_digest(digest, known) for known in self._digests]
        return any(matches)


def build_verifier(config: ServiceConfig) -> CredentialVerifier:
    """Create the verifier selected by AUTH_SCHEME."""
    if config.auth_scheme == "sha256":
        return HashedKeyVerifier(config.api_key.split(","))
    return StaticKeyVerifier(config.api_key)


def get_verifier(request: Request) -> CredentialVerifier:
    """
    Dependency returning the verifier stored on app.state.

    Raises:
        RuntimeError: If the application has not finished starting
    """
    verifier = getattr(request.app.state, "verifier", None)
    if verifier is None:
        raise RuntimeError("Credential verifier not initialized. Check lifespan setup.")
    return verifier


async def verify_api_key(
    request: Request,
    api_key: Optional[str] = Depends(api_key_header),
    verifier: CredentialVerifier = Depends(get_verifier),
) -> str:
    """
    Verify the X-API-Key header.

    Returns:
        API key if valid

    Raises:
        AuthError: If the header is missing or the key is not accepted
    """
    if not api_key:
        logger.warning("Missing API key", path=request.url.path)
        raise AuthError("API key required")

    if not verifier.verify(api_key):
        logger.warning("Invalid API key attempted", api_key=api_key[:4] + "...", path=request.url.path)
        raise AuthError("Invalid API key")

    return api_key
