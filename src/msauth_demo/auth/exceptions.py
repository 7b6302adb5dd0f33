"""Errors raised while completing a sign-in flow.

Every error carries the opaque ``error_code`` that the callback route puts in
the redirect to the home page. Provider bodies and other detail are for the
logs only.
"""


class AuthFlowError(Exception):
    """Base class for sign-in flow failures."""

    error_code = "authentication_failed"


class ProviderError(AuthFlowError):
    """The identity provider redirected back with an ``error`` parameter."""

    def __init__(self, error: str, description: str | None = None):
        super().__init__(f"{error}: {description}" if description else error)
        self.error_code = error
        self.description = description


class MissingParametersError(AuthFlowError):
    error_code = "missing_parameters"


class StateMismatchError(AuthFlowError):
    """Callback state does not match the stored value (possible CSRF)."""

    error_code = "invalid_state"


class MissingVerifierError(AuthFlowError):
    """PKCE code verifier is no longer in the session."""

    error_code = "missing_verifier"


class TokenExchangeError(AuthFlowError):
    """Token endpoint returned a non-success status or an unusable body."""

    def __init__(self, message: str, body: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.body = body
        self.status_code = status_code


class MalformedTokenError(TokenExchangeError):
    """ID token could not be decoded into claims."""


class UserInfoError(AuthFlowError):
    """User-info endpoint returned a non-success status or an unusable body."""

    def __init__(self, message: str, body: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.body = body
        self.status_code = status_code
