"""Signed-cookie session store and session lifecycle."""

from http.cookies import SimpleCookie

import pytest
from fastapi import Response

from msauth_demo.auth.models import SessionRecord, TokenResponse, UserIdentity
from msauth_demo.auth.session import SessionCookieStore, SessionManager
from msauth_demo.config import get_settings

RECORD = {
    "user_id": "u1",
    "email": "u1@contoso.com",
    "name": "User One",
    "access_token": "at-1",
    "refresh_token": None,
    "expires_at": 1_700_000_000_000,
}


def set_cookie_headers(response: Response) -> list[str]:
    return [v.decode() for k, v in response.raw_headers if k == b"set-cookie"]


def parse_set_cookie(header: str) -> tuple[str, SimpleCookie]:
    cookie = SimpleCookie()
    cookie.load(header)
    (name,) = cookie.keys()
    return name, cookie


@pytest.fixture
def store():
    return SessionCookieStore(secret_key="unit-test-secret")


class TestSessionCookieStore:

    def test_round_trip(self, store):
        assert store.load(store.dumps(RECORD)) == RECORD

    def test_commit_of_loaded_cookie_reproduces_record(self, store):
        cookie_value = store.dumps(RECORD)
        response = Response()

        store.commit(response, store.load(cookie_value))

        _, cookie = parse_set_cookie(set_cookie_headers(response)[0])
        reloaded = store.load(cookie["__session"].value)
        for field in ("user_id", "email", "name", "access_token"):
            assert reloaded[field] == RECORD[field]

    def test_tampered_cookie_yields_empty_session(self, store):
        value = store.dumps(RECORD)
        index = 5
        replacement = "A" if value[index] != "A" else "B"
        tampered = value[:index] + replacement + value[index + 1:]

        assert store.load(tampered) == {}

    def test_any_single_character_change_yields_empty_session(self, store):
        value = store.dumps(RECORD)

        for index, char in enumerate(value):
            replacement = "A" if char != "A" else "B"
            tampered = value[:index] + replacement + value[index + 1:]
            assert store.load(tampered) == {}, f"change at index {index} accepted"

    def test_truncated_signature_yields_empty_session(self, store):
        value = store.dumps(RECORD)
        assert store.load(value[:-4]) == {}

    def test_unsigned_cookie_yields_empty_session(self, store):
        assert store.load('{"user_id": "u1"}') == {}

    def test_other_secret_yields_empty_session(self, store):
        other = SessionCookieStore(secret_key="someone-elses-secret")
        assert store.load(other.dumps(RECORD)) == {}

    @pytest.mark.parametrize("value", [None, ""])
    def test_missing_cookie(self, store, value):
        assert store.load(value) == {}

    def test_non_dict_payload_yields_empty_session(self, store):
        assert store.load(store.dumps(["not", "a", "dict"])) == {}

    def test_cookie_attributes(self, store):
        response = Response()
        store.commit(response, RECORD)

        header = set_cookie_headers(response)[0]
        _, cookie = parse_set_cookie(header)
        morsel = cookie["__session"]
        assert morsel["httponly"]
        assert morsel["samesite"].lower() == "lax"
        assert morsel["path"] == "/"
        assert morsel["max-age"] == str(60 * 60 * 24 * 7)
        assert not morsel["secure"]

    def test_secure_flag(self):
        store = SessionCookieStore(secret_key="s", secure=True)
        response = Response()
        store.commit(response, RECORD)

        assert "secure" in set_cookie_headers(response)[0].lower()

    def test_destroy_expires_cookie(self, store):
        response = Response()
        store.destroy(response)

        name, cookie = parse_set_cookie(set_cookie_headers(response)[0])
        assert name == "__session"
        assert cookie[name]["max-age"] == "0"
        assert store.load(cookie[name].value) == {}

    def test_committing_empty_session_destroys_cookie(self, store):
        response = Response()
        store.commit(response, {})

        _, cookie = parse_set_cookie(set_cookie_headers(response)[0])
        assert cookie["__session"]["max-age"] == "0"


class TestSessionManager:

    @pytest.fixture
    def manager(self):
        return SessionManager(get_settings())

    def test_production_sets_secure_cookies(self, monkeypatch):
        monkeypatch.setenv("SERVER_ENV", "production")
        get_settings.cache_clear()

        assert SessionManager(get_settings()).store.secure

    def test_get_user_complete_session(self, manager):
        user = manager.get_user(dict(RECORD))

        assert isinstance(user, SessionRecord)
        assert user.user_id == "u1"

    def test_get_user_anonymous(self, manager):
        assert manager.get_user({}) is None
        assert manager.get_user({"oauth2_flow": {"state": "s"}}) is None

    @pytest.mark.parametrize("missing", ["email", "name", "access_token", "expires_at"])
    def test_partial_session_is_not_authenticated(self, manager, missing):
        partial = {k: v for k, v in RECORD.items() if k != missing}
        assert manager.get_user(partial) is None

    def test_create_user_session(self, manager):
        session = {"entra_flow": {"state": "leftover"}}
        identity = UserIdentity(id="u9", email="u9@x.com", name="Nine")
        tokens = TokenResponse(access_token="at-9", refresh_token="rt-9", expires_in=60)

        response = manager.create_user_session(session, identity, tokens, now_ms=1_000)

        assert response.status_code == 302
        assert response.headers["location"] == "/dashboard"
        assert session["user_id"] == "u9"
        assert session["expires_at"] == 61_000

        _, cookie = parse_set_cookie(set_cookie_headers(response)[0])
        stored = manager.store.load(cookie["__session"].value)
        user = manager.get_user(stored)
        assert user.email == "u9@x.com"
        assert user.refresh_token == "rt-9"
        assert user.expires_at == 61_000

    def test_logout_clears_cookie(self, manager):
        response = manager.logout()

        assert response.status_code == 302
        assert response.headers["location"] == "/"
        _, cookie = parse_set_cookie(set_cookie_headers(response)[0])
        assert manager.get_user(manager.store.load(cookie["__session"].value)) is None
