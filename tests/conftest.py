"""Shared fixtures: test environment, provider stubs and an app client."""

from urllib.parse import parse_qs

import httpx
import pytest
from fastapi.testclient import TestClient
from jose import jwt

from msauth_demo import config as config_module
from msauth_demo.auth import flows as flows_module
from msauth_demo.auth import oidc_config
from msauth_demo.auth import session as session_module
from msauth_demo.auth.flows import B2CFlow, EntraPKCEFlow, OAuth2Flow
from msauth_demo.auth.oidc_config import B2CConfig, EntraConfig, OAuth2Config
from msauth_demo.auth.routes import resolve_flow
from msauth_demo.main import app

TEST_ENV = {
    "SESSION_SECRET": "test-session-secret",
    "SERVER_ENV": "development",
    "OAUTH2_CLIENT_ID": "oauth2-client-id",
    "OAUTH2_CLIENT_SECRET": "oauth2-client-secret",
    "OAUTH2_TENANT_ID": "test-tenant",
    "B2C_CLIENT_ID": "b2c-client-id",
    "B2C_CLIENT_SECRET": "b2c-client-secret",
    "B2C_TENANT_NAME": "contosob2c",
    "ENTRA_CLIENT_ID": "entra-client-id",
    "ENTRA_TENANT_ID": "test-tenant",
}

GRAPH_USER = {
    "id": "graph-user-1",
    "displayName": "Test User",
    "mail": "test.user@contoso.com",
    "userPrincipalName": "test.user@contoso.onmicrosoft.com",
}


def clear_caches():
    config_module.get_settings.cache_clear()
    config_module.get_aws_secrets.cache_clear()
    oidc_config.get_oauth2_config.cache_clear()
    oidc_config.get_b2c_config.cache_clear()
    oidc_config.get_entra_config.cache_clear()
    flows_module.get_flow.cache_clear()
    session_module._session_manager = None


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Known environment for every test, with cached settings reset."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("AWS_SECRET_NAME", raising=False)
    clear_caches()
    yield
    clear_caches()
    app.dependency_overrides.clear()


def make_id_token(claims: dict) -> str:
    """Unsigned-for-our-purposes ID token; the B2C flow does not verify signatures."""
    return jwt.encode(claims, "not-checked", algorithm="HS256")


class ProviderStub:
    """Stands in for the token endpoints and Microsoft Graph."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_body: dict | str = {
            "access_token": "access-token-123",
            "refresh_token": "refresh-token-456",
            "expires_in": 3600,
            "token_type": "Bearer",
        }
        self.me_status = 200
        self.me_body: dict | str = dict(GRAPH_USER)

    @staticmethod
    def _response(status_code: int, body: dict | str) -> httpx.Response:
        if isinstance(body, str):
            return httpx.Response(status_code, text=body)
        return httpx.Response(status_code, json=body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/oauth2/v2.0/token"):
            return self._response(self.token_status, self.token_body)
        if request.url.host == "graph.microsoft.com":
            return self._response(self.me_status, self.me_body)
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/token")]

    def token_form(self, index: int = 0) -> dict[str, str]:
        request = self.token_requests[index]
        return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


@pytest.fixture
def provider():
    return ProviderStub()


@pytest.fixture
def oauth2_config():
    return OAuth2Config(
        client_id="cid",
        client_secret="super-secret-value",
        tenant_id="test-tenant",
        redirect_uri="https://x/cb",
    )


@pytest.fixture
def b2c_config():
    return B2CConfig(
        client_id="b2c-cid",
        client_secret="b2c-secret-value",
        tenant_name="contosob2c",
        policy_name="B2C_1_signupsignin1",
        redirect_uri="https://x/b2c/cb",
    )


@pytest.fixture
def entra_config():
    return EntraConfig(
        client_id="entra-cid",
        tenant_id="test-tenant",
        redirect_uri="https://x/entra/cb",
    )


@pytest.fixture
def flows(provider, oauth2_config, b2c_config, entra_config):
    return {
        "oauth2": OAuth2Flow(oauth2_config, transport=provider.transport),
        "b2c": B2CFlow(b2c_config, transport=provider.transport),
        "entra": EntraPKCEFlow(entra_config, transport=provider.transport),
    }


@pytest.fixture
def client(flows):
    """App client whose flows talk to the provider stub."""

    def override_flow(flow_name: str):
        return flows[flow_name]

    app.dependency_overrides[resolve_flow] = override_flow
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def session_store():
    return session_module.get_session_manager().store
