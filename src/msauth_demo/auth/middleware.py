"""Authentication dependencies for FastAPI."""

import logging
from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status

from msauth_demo.auth.models import SessionRecord
from msauth_demo.auth.session import SessionManager, get_session_manager

logger = logging.getLogger(__name__)


async def get_session(
    request: Request,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> dict[str, Any]:
    """Load the session from the signed cookie (empty when absent or tampered)."""
    return session_manager.get_session(request)


async def get_current_user(
    session: Annotated[dict[str, Any], Depends(get_session)],
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> SessionRecord | None:
    """
    Get the signed-in user from the session.
    Returns None if no complete identity is stored.
    """
    return session_manager.get_user(session)


async def require_authenticated(
    user: Annotated[SessionRecord | None, Depends(get_current_user)]
) -> SessionRecord:
    """Require a signed-in user."""
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return user


# Type aliases for dependency injection
Session = Annotated[dict[str, Any], Depends(get_session)]
CurrentUser = Annotated[SessionRecord | None, Depends(get_current_user)]
AuthenticatedUser = Annotated[SessionRecord, Depends(require_authenticated)]
