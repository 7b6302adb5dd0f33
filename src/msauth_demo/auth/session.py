"""Signed-cookie session storage and session lifecycle."""

import hashlib
import logging
from typing import Any

from fastapi import Request, Response, status
from fastapi.responses import RedirectResponse
from itsdangerous import BadSignature, URLSafeTimedSerializer
from pydantic import ValidationError

from msauth_demo.config import Settings, get_settings
from msauth_demo.auth.models import SessionRecord, TokenResponse, UserIdentity

logger = logging.getLogger(__name__)

SESSION_SALT = "msauth-demo.session"


class SessionCookieStore:
    """Key/value session serialized into a single signed cookie.

    The whole record travels as one signed blob, so a reader sees either the
    previous cookie or the new one, never a mix of both.
    """

    def __init__(
        self,
        secret_key: str,
        cookie_name: str = "__session",
        max_age: int = 60 * 60 * 24 * 7,
        secure: bool = False,
    ):
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.secure = secure
        self._serializer = URLSafeTimedSerializer(
            secret_key,
            salt=SESSION_SALT,
            # Every character of a 48-byte signature is significant
            signer_kwargs={"digest_method": hashlib.sha384},
        )

    def load(self, cookie_value: str | None) -> dict[str, Any]:
        """Decode a cookie value. Anything unverifiable yields an empty session."""
        if not cookie_value:
            return {}
        try:
            data = self._serializer.loads(cookie_value, max_age=self.max_age)
        except BadSignature:
            logger.debug("Discarding session cookie with bad or expired signature")
            return {}
        if not isinstance(data, dict):
            logger.debug("Discarding session cookie with non-object payload")
            return {}
        return data

    def dumps(self, record: dict[str, Any]) -> str:
        return self._serializer.dumps(record)

    def commit(self, response: Response, record: dict[str, Any]) -> None:
        """Write ``record`` to the response's Set-Cookie header."""
        if not record:
            self.destroy(response)
            return
        response.set_cookie(
            key=self.cookie_name,
            value=self.dumps(record),
            max_age=self.max_age,
            path="/",
            httponly=True,
            secure=self.secure,
            samesite="lax",
        )

    def destroy(self, response: Response) -> None:
        """Expire the session cookie immediately."""
        response.delete_cookie(
            key=self.cookie_name,
            path="/",
            httponly=True,
            secure=self.secure,
            samesite="lax",
        )


class SessionManager:
    """Creates, reads and destroys user sessions."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.store = SessionCookieStore(
            secret_key=self.settings.session_secret,
            cookie_name=self.settings.session_cookie_name,
            max_age=self.settings.session_max_age_seconds,
            secure=self.settings.is_production,
        )

    def get_session(self, request: Request) -> dict[str, Any]:
        return self.store.load(request.cookies.get(self.store.cookie_name))

    def get_user(self, session: dict[str, Any]) -> SessionRecord | None:
        """Return the signed-in user, or None for anonymous or partial sessions."""
        if "user_id" not in session:
            return None
        try:
            return SessionRecord.model_validate(session)
        except ValidationError:
            logger.warning("Ignoring session with incomplete identity fields")
            return None

    def redirect(self, url: str, session: dict[str, Any]) -> RedirectResponse:
        """Redirect to ``url``, committing ``session`` alongside."""
        response = RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)
        self.store.commit(response, session)
        return response

    def create_user_session(
        self,
        session: dict[str, Any],
        identity: UserIdentity,
        tokens: TokenResponse,
        redirect_to: str | None = None,
        now_ms: int | None = None,
    ) -> RedirectResponse:
        """Store the signed-in user in ``session`` and redirect to the protected area."""
        record = SessionRecord.from_login(identity, tokens, tokens.expires_at_ms(now_ms))
        session.update(record.model_dump())
        logger.info(f"Created session for user {record.user_id}")
        return self.redirect(redirect_to or self.settings.protected_path, session)

    def logout(self, redirect_to: str | None = None) -> RedirectResponse:
        """Destroy the session and redirect home."""
        response = RedirectResponse(
            url=redirect_to or self.settings.home_path,
            status_code=status.HTTP_302_FOUND,
        )
        self.store.destroy(response)
        return response


# Singleton instance
_session_manager: SessionManager | None = None


def get_session_manager() -> SessionManager:
    """Get or create session manager instance."""
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager
