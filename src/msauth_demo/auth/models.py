"""Authentication data models."""

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FlowState(BaseModel):
    """Per-login values kept in the session between redirect and callback."""

    model_config = ConfigDict(frozen=True)

    state: str
    nonce: str | None = None  # B2C
    code_verifier: str | None = None  # PKCE


class TokenResponse(BaseModel):
    """Token endpoint response."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    expires_in: int = Field(default=3600, description="Access token lifetime in seconds")
    id_token: str | None = None
    token_type: str | None = None
    scope: str | None = None

    def expires_at_ms(self, now_ms: int | None = None) -> int:
        """Absolute expiry as epoch milliseconds."""
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return now_ms + self.expires_in * 1000


class UserIdentity(BaseModel):
    """User identity normalized from any of the provider response shapes."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)

    @classmethod
    def from_graph_user(cls, payload: dict[str, Any]) -> "UserIdentity":
        """Build from a Microsoft Graph ``/me`` response."""
        return cls(
            id=payload.get("id"),
            email=payload.get("userPrincipalName") or payload.get("mail"),
            name=payload.get("displayName"),
        )

    @classmethod
    def from_id_token_claims(cls, claims: dict[str, Any]) -> "UserIdentity":
        """Build from B2C ID-token claims.

        Raises ValueError when ``emails`` is present but not a list.
        """
        emails = claims.get("emails") or []
        if not isinstance(emails, list):
            raise ValueError(f"emails claim must be a list, got {type(emails).__name__}")
        return cls(
            id=claims.get("sub"),
            email=(emails[0] if emails else None) or claims.get("email"),
            name=claims.get("name"),
        )


class SessionRecord(BaseModel):
    """Identity and tokens held in the signed session cookie."""

    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    expires_at: int = Field(..., description="Access token expiry, epoch milliseconds")

    @property
    def is_token_expired(self) -> bool:
        return time.time() * 1000 > self.expires_at

    @classmethod
    def from_login(
        cls,
        identity: UserIdentity,
        tokens: TokenResponse,
        expires_at: int,
    ) -> "SessionRecord":
        return cls(
            user_id=identity.id,
            email=identity.email,
            name=identity.name,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=expires_at,
        )
