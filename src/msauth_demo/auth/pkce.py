"""State, nonce and PKCE (RFC 7636) value generation."""

import base64
import hashlib
import secrets

STATE_BYTES = 32
VERIFIER_BYTES = 32


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def generate_state() -> str:
    """Generate a single-use CSRF state token."""
    return _b64url(secrets.token_bytes(STATE_BYTES))


def generate_nonce() -> str:
    """Generate a single-use nonce for ID-token replay protection."""
    return _b64url(secrets.token_bytes(STATE_BYTES))


def generate_code_verifier() -> str:
    """Generate a PKCE code verifier (43 characters for 32 bytes)."""
    return _b64url(secrets.token_bytes(VERIFIER_BYTES))


def generate_code_challenge(verifier: str) -> str:
    """Derive the S256 code challenge for a verifier."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def states_match(expected: str | None, received: str | None) -> bool:
    """Compare a stored state with the one echoed back by the provider."""
    if not expected or not received:
        return False
    return secrets.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))
