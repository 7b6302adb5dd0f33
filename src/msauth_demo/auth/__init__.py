"""Authentication module for the Microsoft auth demo."""

from msauth_demo.auth.exceptions import (
    AuthFlowError,
    MalformedTokenError,
    MissingParametersError,
    MissingVerifierError,
    ProviderError,
    StateMismatchError,
    TokenExchangeError,
    UserInfoError,
)
from msauth_demo.auth.models import FlowState, TokenResponse, UserIdentity, SessionRecord
from msauth_demo.auth.flows import (
    IdentityProviderFlow,
    OAuth2Flow,
    B2CFlow,
    EntraPKCEFlow,
    get_flow,
)
from msauth_demo.auth.session import SessionCookieStore, SessionManager, get_session_manager
from msauth_demo.auth.middleware import (
    require_authenticated,
    AuthenticatedUser,
    CurrentUser,
)
from msauth_demo.auth.routes import router as auth_router

__all__ = [
    # Errors
    "AuthFlowError",
    "MalformedTokenError",
    "MissingParametersError",
    "MissingVerifierError",
    "ProviderError",
    "StateMismatchError",
    "TokenExchangeError",
    "UserInfoError",
    # Models
    "FlowState",
    "TokenResponse",
    "UserIdentity",
    "SessionRecord",
    # Flows
    "IdentityProviderFlow",
    "OAuth2Flow",
    "B2CFlow",
    "EntraPKCEFlow",
    "get_flow",
    # Session
    "SessionCookieStore",
    "SessionManager",
    "get_session_manager",
    # Middleware
    "require_authenticated",
    "AuthenticatedUser",
    "CurrentUser",
    # Routes
    "auth_router",
]
