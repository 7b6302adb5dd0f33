"""Sign-in flows for the three Microsoft identity provider variants."""

import logging
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Callable
from urllib.parse import urlencode

import httpx
from jose import jwt, JWTError
from pydantic import ValidationError

from msauth_demo.auth.exceptions import (
    MalformedTokenError,
    MissingParametersError,
    MissingVerifierError,
    ProviderError,
    StateMismatchError,
    TokenExchangeError,
    UserInfoError,
)
from msauth_demo.auth.models import FlowState, TokenResponse, UserIdentity
from msauth_demo.auth.oidc_config import (
    GRAPH_ME_ENDPOINT,
    B2CConfig,
    EntraConfig,
    FlowConfig,
    OAuth2Config,
    get_b2c_config,
    get_entra_config,
    get_oauth2_config,
)
from msauth_demo.auth.pkce import (
    generate_code_challenge,
    generate_code_verifier,
    generate_nonce,
    generate_state,
    states_match,
)

logger = logging.getLogger(__name__)


class IdentityProviderFlow(ABC):
    """Authorization code flow against one Microsoft identity provider.

    Subclasses differ only in their scopes, the extra authorization
    parameters they send, how they authenticate to the token endpoint and
    where the user identity comes from.
    """

    name: str
    scopes: tuple[str, ...] = ("openid", "profile", "email")

    def __init__(
        self,
        config: FlowConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._transport = transport

    @property
    def session_key(self) -> str:
        return f"{self.name}_flow"

    def store_flow_state(self, session: dict[str, Any], flow_state: FlowState) -> None:
        session[self.session_key] = flow_state.model_dump(exclude_none=True)

    def pop_flow_state(self, session: dict[str, Any]) -> FlowState | None:
        """Remove and return the flow state stored at login. It is never reused."""
        stored = session.pop(self.session_key, None)
        if not isinstance(stored, dict):
            return None
        try:
            return FlowState.model_validate(stored)
        except ValidationError:
            return None

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport)

    def start_login(self) -> tuple[FlowState, str]:
        """Generate the flow state and the authorization URL for a new login."""
        flow_state = FlowState(state=generate_state())
        return flow_state, self.build_authorization_url(flow_state.state)

    def build_authorization_url(self, state: str, **extra: str) -> str:
        """Build the provider's authorization URL."""
        params = {
            "client_id": self.config.client_id,
            "response_type": "code",
            "redirect_uri": self.config.redirect_uri,
            "response_mode": "query",
            "scope": self.scope,
            "state": state,
            **extra,
        }
        return f"{self.config.authorization_endpoint}?{urlencode(params)}"

    def check_flow_state(self, flow_state: FlowState) -> None:
        """Reject a stored flow state that cannot complete the exchange."""

    def token_request_data(self, code: str, flow_state: FlowState) -> dict[str, str]:
        return {
            "client_id": self.config.client_id,
            "code": code,
            "redirect_uri": self.config.redirect_uri,
            "grant_type": "authorization_code",
        }

    async def exchange_code_for_tokens(self, code: str, flow_state: FlowState) -> TokenResponse:
        """Exchange an authorization code for tokens."""
        data = self.token_request_data(code, flow_state)

        try:
            async with self._client() as client:
                resp = await client.post(
                    self.config.token_endpoint,
                    data=data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            logger.error(f"{self.name} token request failed: {e}")
            raise TokenExchangeError(f"Token request failed: {e}") from e

        if not resp.is_success:
            logger.error(f"{self.name} token exchange failed ({resp.status_code}): {resp.text}")
            raise TokenExchangeError(
                f"Token exchange failed with status {resp.status_code}",
                body=resp.text,
                status_code=resp.status_code,
            )

        try:
            return TokenResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"{self.name} token response unusable: {resp.text}")
            raise TokenExchangeError("Token response unusable", body=resp.text) from e

    async def complete_login(
        self,
        flow_state: FlowState | None,
        code: str | None,
        state: str | None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> tuple[UserIdentity, TokenResponse]:
        """Validate a provider callback and resolve the signed-in user.

        ``flow_state`` is the value stored at login, already removed from
        the session by the caller so it can never be replayed. Raises an
        AuthFlowError subclass at the first failing step; nothing is sent to
        the token endpoint until the state has been validated.
        """
        if error:
            logger.error(f"{self.name} provider error: {error} - {error_description}")
            raise ProviderError(error, error_description)

        if not code or not state:
            raise MissingParametersError("Callback is missing code or state")

        if flow_state is None or not states_match(flow_state.state, state):
            logger.warning(f"{self.name} callback state does not match the stored state")
            raise StateMismatchError("Invalid or expired state parameter")

        self.check_flow_state(flow_state)

        tokens = await self.exchange_code_for_tokens(code, flow_state)
        identity = await self.resolve_identity(tokens, flow_state)
        return identity, tokens

    @abstractmethod
    async def resolve_identity(self, tokens: TokenResponse, flow_state: FlowState) -> UserIdentity:
        """Turn the token response into a user identity."""


class GraphIdentityMixin:
    """Resolves the user through Microsoft Graph ``/me``."""

    name: str

    async def fetch_user_identity(self, access_token: str) -> UserIdentity:
        try:
            async with self._client() as client:
                resp = await client.get(
                    GRAPH_ME_ENDPOINT,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"{self.name} user info request failed: {e}")
            raise UserInfoError(f"User info request failed: {e}") from e

        if not resp.is_success:
            logger.error(f"{self.name} user info failed ({resp.status_code}): {resp.text}")
            raise UserInfoError(
                f"User info failed with status {resp.status_code}",
                body=resp.text,
                status_code=resp.status_code,
            )

        try:
            return UserIdentity.from_graph_user(resp.json())
        except (AttributeError, ValueError, ValidationError) as e:
            logger.error(f"{self.name} user info response incomplete: {resp.text}")
            raise UserInfoError("User info response incomplete", body=resp.text) from e

    async def resolve_identity(self, tokens: TokenResponse, flow_state: FlowState) -> UserIdentity:
        return await self.fetch_user_identity(tokens.access_token)


class OAuth2Flow(GraphIdentityMixin, IdentityProviderFlow):
    """Standard authorization code flow with a client secret."""

    name = "oauth2"
    scopes = ("openid", "profile", "email", "User.Read")
    config: OAuth2Config

    def token_request_data(self, code: str, flow_state: FlowState) -> dict[str, str]:
        data = super().token_request_data(code, flow_state)
        data["client_secret"] = self.config.client_secret
        return data


class B2CFlow(IdentityProviderFlow):
    """Azure AD B2C user-flow policy with a client secret and nonce."""

    name = "b2c"
    config: B2CConfig

    @property
    def scopes(self) -> tuple[str, ...]:
        # B2C issues an access token only when the app's own client id is requested
        return ("openid", "profile", "email", self.config.client_id)

    def start_login(self) -> tuple[FlowState, str]:
        flow_state = FlowState(state=generate_state(), nonce=generate_nonce())
        return flow_state, self.build_authorization_url(flow_state.state, nonce=flow_state.nonce)

    def build_authorization_url(self, state: str, nonce: str) -> str:
        return super().build_authorization_url(state, nonce=nonce)

    def token_request_data(self, code: str, flow_state: FlowState) -> dict[str, str]:
        data = super().token_request_data(code, flow_state)
        data["client_secret"] = self.config.client_secret
        return data

    def parse_id_token(self, id_token: str | None, nonce: str | None = None) -> UserIdentity:
        """Decode the ID token's claims into a user identity.

        The signature is not checked. The token is trusted because it came
        straight from the token endpoint over TLS in response to our own
        client-authenticated request. When a nonce was sent with the
        authorization request it must come back unchanged.
        """
        if not id_token or id_token.count(".") != 2:
            raise MalformedTokenError("ID token must have three dot-separated segments")

        try:
            claims = jwt.get_unverified_claims(id_token)
        except JWTError as e:
            raise MalformedTokenError(f"ID token could not be decoded: {e}") from e

        if nonce is not None and claims.get("nonce") != nonce:
            logger.warning(f"{self.name} ID token nonce does not match the login request")
            raise MalformedTokenError("ID token nonce mismatch")

        try:
            return UserIdentity.from_id_token_claims(claims)
        except (ValueError, LookupError, TypeError) as e:
            raise MalformedTokenError("ID token is missing identity claims") from e

    async def resolve_identity(self, tokens: TokenResponse, flow_state: FlowState) -> UserIdentity:
        return self.parse_id_token(tokens.id_token, nonce=flow_state.nonce)


class EntraPKCEFlow(GraphIdentityMixin, IdentityProviderFlow):
    """Entra ID public client flow with PKCE instead of a client secret."""

    name = "entra"
    scopes = ("openid", "profile", "email", "User.Read", "offline_access")
    config: EntraConfig

    def start_login(self) -> tuple[FlowState, str]:
        code_verifier = generate_code_verifier()
        flow_state = FlowState(state=generate_state(), code_verifier=code_verifier)
        url = self.build_authorization_url(
            flow_state.state,
            code_challenge=generate_code_challenge(code_verifier),
        )
        return flow_state, url

    def build_authorization_url(self, state: str, code_challenge: str) -> str:
        return super().build_authorization_url(
            state,
            code_challenge=code_challenge,
            code_challenge_method="S256",
        )

    def check_flow_state(self, flow_state: FlowState) -> None:
        if not flow_state.code_verifier:
            raise MissingVerifierError("PKCE code verifier missing from session")

    def token_request_data(self, code: str, flow_state: FlowState) -> dict[str, str]:
        self.check_flow_state(flow_state)
        data = super().token_request_data(code, flow_state)
        data["code_verifier"] = flow_state.code_verifier
        return data


FLOW_TYPES: dict[str, tuple[type[IdentityProviderFlow], Callable[[], FlowConfig]]] = {
    OAuth2Flow.name: (OAuth2Flow, get_oauth2_config),
    B2CFlow.name: (B2CFlow, get_b2c_config),
    EntraPKCEFlow.name: (EntraPKCEFlow, get_entra_config),
}


@lru_cache
def get_flow(name: str) -> IdentityProviderFlow:
    """Get the flow for ``name``, loading its configuration on first use.

    Raises KeyError for unknown names and ConfigurationError when the flow's
    settings are incomplete.
    """
    flow_cls, load_config = FLOW_TYPES[name]
    return flow_cls(load_config())
