"""Authentication routes for the sign-in, callback and logout flows."""

import logging
from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, status

from msauth_demo.config import Settings, get_settings
from msauth_demo.auth.exceptions import AuthFlowError, ProviderError
from msauth_demo.auth.flows import IdentityProviderFlow, get_flow
from msauth_demo.auth.middleware import AuthenticatedUser, Session
from msauth_demo.auth.session import SessionManager, get_session_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def resolve_flow(flow_name: str) -> IdentityProviderFlow:
    """Look up the flow named in the path; its config is loaded on first use."""
    try:
        return get_flow(flow_name)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown sign-in flow: {flow_name}",
        )


def error_redirect_url(home_path: str, exc: AuthFlowError) -> str:
    params = {"error": exc.error_code}
    if isinstance(exc, ProviderError) and exc.description:
        params["error_description"] = exc.description
    return f"{home_path}?{urlencode(params)}"


@router.api_route("/logout", methods=["GET", "POST"])
async def logout(
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
):
    """Log out the current user by clearing the session cookie."""
    return session_manager.logout()


@router.get("/me")
async def get_current_user(user: AuthenticatedUser):
    """Get information about the currently signed-in user."""
    return {
        "user_id": user.user_id,
        "email": user.email,
        "name": user.name,
        "expires_at": user.expires_at,
        "token_expired": user.is_token_expired,
    }


@router.get("/{flow_name}/login")
async def login(
    flow: Annotated[IdentityProviderFlow, Depends(resolve_flow)],
    session: Session,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
):
    """
    Start a sign-in flow.
    Stores the flow state in the session cookie and redirects to the provider.
    """
    flow_state, auth_url = flow.start_login()
    flow.store_flow_state(session, flow_state)

    logger.info(f"Starting {flow.name} sign-in")
    return session_manager.redirect(auth_url, session)


@router.get("/{flow_name}/callback")
async def auth_callback(
    flow: Annotated[IdentityProviderFlow, Depends(resolve_flow)],
    session: Session,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
    settings: Annotated[Settings, Depends(get_settings)],
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
):
    """
    Provider callback handler.
    Validates state, exchanges the code for tokens and creates the session.
    Every failure ends in a redirect home carrying only an error code.
    """
    flow_state = flow.pop_flow_state(session)

    try:
        identity, tokens = await flow.complete_login(
            flow_state,
            code=code,
            state=state,
            error=error,
            error_description=error_description,
        )
    except AuthFlowError as e:
        logger.warning(f"{flow.name} sign-in failed ({e.error_code}): {e}")
        return session_manager.redirect(error_redirect_url(settings.home_path, e), session)

    logger.info(f"User {identity.id} signed in with {flow.name}")
    return session_manager.create_user_session(session, identity, tokens)
