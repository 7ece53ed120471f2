"""
tests/test_auth_flow.py -- Integration tests for the login flow through the ASGI stack.

These tests run the real middleware stack (SessionMiddleware + AuthMiddleware)
and the web/API routes with the web_client fixture (follow_redirects=False).
Redirect Location headers and Set-Cookie headers are asserted directly.

Coverage:
  - Anonymous GET / -> remember location -> 302 /login
  - POST /login -> 302 back to the remembered location (or the default)
  - Remember-me cookie restores a fresh browser session
  - Logout clears the remember-me cookie and drops the token
  - Tampered remember-me cookie is cleared, request stays anonymous
  - Deleted user's session resolves anonymous
  - Web: /me, /logout/everywhere
  - API: /auth/me, /auth/logout/everywhere, /health
  - AuthMiddleware refuses to run without SessionMiddleware
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.main import create_app
from auth.errors import SessionRequiredError
from auth.middleware import AuthMiddleware
from auth.options import AuthOptions
from auth.tokens import TOKEN_LENGTH, sign_value
from web.routes import router as web_router


def _set_cookie_headers(resp) -> list[str]:
    return resp.headers.get_list("set-cookie")


def _deletes_cookie(resp, name: str) -> bool:
    return any(
        h.startswith(f"{name}=") and ("max-age=0" in h.lower() or "1970" in h) for h in _set_cookie_headers(resp)
    )


def _login(client: TestClient, user: str = "joe", remember: bool = False):
    data = {"user": user}
    if remember:
        data["remember"] = "true"
    return client.post("/login", data=data)


class TestLoginRedirectFlow:
    def test_anonymous_root_remembers_location_and_redirects(self, web_client: TestClient) -> None:
        resp = web_client.get("/")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login"
        assert any(h.startswith("lastLocation=") for h in _set_cookie_headers(resp))

    def test_remembered_location_keeps_port(self, settings, stores) -> None:
        user_store, token_store, _joe = stores
        app = create_app(settings, user_store=user_store, token_store=token_store)
        app.include_router(web_router)
        with TestClient(app, base_url="http://localhost:8000", follow_redirects=False) as client:
            resp = client.get("/")
        assert resp.status_code == 302
        location = [h for h in _set_cookie_headers(resp) if h.startswith("lastLocation=")]
        assert len(location) == 1
        assert "http://localhost:8000/" in location[0]

    def test_xhr_request_is_not_remembered(self, web_client: TestClient) -> None:
        resp = web_client.get("/", headers={"X-Requested-With": "XMLHttpRequest"})
        assert resp.status_code == 302
        assert not any(h.startswith("lastLocation=") for h in _set_cookie_headers(resp))

    def test_login_redirects_to_remembered_location(self, web_client: TestClient) -> None:
        web_client.get("/")
        resp = _login(web_client)
        assert resp.status_code == 302
        assert resp.headers["location"] == "http://testserver/"

        home = web_client.get("/")
        assert home.status_code == 200
        assert home.text == "Hi, Joe Bloggs"

    def test_login_without_remembered_location_uses_default(self, web_client: TestClient) -> None:
        resp = _login(web_client)
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"

    def test_unknown_user_is_404(self, web_client: TestClient) -> None:
        resp = _login(web_client, user="nobody")
        assert resp.status_code == 404

    def test_login_form_renders(self, web_client: TestClient) -> None:
        resp = web_client.get("/login")
        assert resp.status_code == 200
        assert "Authenticate, please." in resp.text

    def test_logout_ends_session(self, web_client: TestClient) -> None:
        _login(web_client)
        resp = web_client.post("/logout")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login"
        assert web_client.get("/").status_code == 302

    def test_deleted_user_session_is_anonymous(self, web_client: TestClient, stores) -> None:
        user_store, _tokens, joe = stores
        _login(web_client)
        assert web_client.get("/").status_code == 200
        user_store.delete_user(joe.id)
        resp = web_client.get("/")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login"


class TestRememberMe:
    def test_login_without_remember_issues_no_token(self, web_client: TestClient, stores) -> None:
        _users, tokens, joe = stores
        resp = _login(web_client)
        assert not any(h.startswith("at=") for h in _set_cookie_headers(resp))
        assert tokens.count_tokens(joe) == 0

    def test_remember_cookie_restores_fresh_browser(self, web_client: TestClient, stores) -> None:
        _users, tokens, joe = stores
        resp = _login(web_client, remember=True)
        assert any(h.startswith("at=") for h in _set_cookie_headers(resp))
        assert tokens.count_tokens(joe) == 1

        remember = web_client.cookies.get("at")
        web_client.cookies.clear()
        web_client.cookies.set("at", remember)

        home = web_client.get("/")
        assert home.status_code == 200
        assert home.text == "Hi, Joe Bloggs"
        # The session was re-established alongside the cookie login.
        assert any(h.startswith("session=") for h in _set_cookie_headers(home))

    def test_logout_clears_cookie_and_drops_token(self, web_client: TestClient, stores) -> None:
        _users, tokens, joe = stores
        _login(web_client, remember=True)
        resp = web_client.post("/logout")
        assert _deletes_cookie(resp, "at")
        assert tokens.count_tokens(joe) == 0
        assert web_client.get("/").status_code == 302

    def test_tampered_token_clears_cookie(self, web_client: TestClient, stores, settings) -> None:
        _users, _tokens, joe = stores
        _login(web_client, remember=True)
        forged = sign_value(settings.secret_key, f"{joe.id}:" + "x" * TOKEN_LENGTH)
        web_client.cookies.clear()
        web_client.cookies.set("at", forged)

        resp = web_client.get("/")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login"
        assert _deletes_cookie(resp, "at")


class TestWebAccountRoutes:
    def test_me_requires_auth(self, web_client: TestClient) -> None:
        resp = web_client.get("/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_me_shows_principal(self, web_client: TestClient) -> None:
        _login(web_client)
        resp = web_client.get("/me")
        assert resp.status_code == 200
        assert resp.text == "Signed in as joe"

    def test_logout_everywhere_requires_auth(self, web_client: TestClient) -> None:
        assert web_client.post("/logout/everywhere").status_code == 401

    def test_logout_everywhere_revokes_all_devices(self, web_client: TestClient, stores) -> None:
        _users, tokens, joe = stores
        _login(web_client, remember=True)
        web_client.cookies.clear()
        _login(web_client, remember=True)
        assert tokens.count_tokens(joe) == 2

        resp = web_client.post("/logout/everywhere")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login"
        assert _deletes_cookie(resp, "at")
        assert tokens.count_tokens(joe) == 0
        assert web_client.get("/me").status_code == 401


class TestAuthApi:
    def test_me_requires_auth(self, web_client: TestClient) -> None:
        resp = web_client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_me_returns_principal(self, web_client: TestClient) -> None:
        _login(web_client)
        resp = web_client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json()["username"] == "joe"
        assert resp.json()["name"] == "Joe Bloggs"

    def test_api_logout(self, web_client: TestClient) -> None:
        _login(web_client)
        resp = web_client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert web_client.get("/api/v1/auth/me").status_code == 401

    def test_logout_everywhere_revokes_all_devices(self, web_client: TestClient, stores) -> None:
        _users, tokens, joe = stores
        _login(web_client, remember=True)
        web_client.cookies.clear()
        _login(web_client, remember=True)
        assert tokens.count_tokens(joe) == 2

        resp = web_client.post("/api/v1/auth/logout/everywhere")
        assert resp.status_code == 200
        assert tokens.count_tokens(joe) == 0

    def test_health_reports_remember_me(self, web_client: TestClient) -> None:
        resp = web_client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["remember_me"] is True


class TestMiddlewareSetup:
    def test_requires_session_middleware(self) -> None:
        async def find_user_by_id(user_id):
            return None

        app = FastAPI()
        app.add_middleware(AuthMiddleware, options=AuthOptions(get_user_id=id, find_user_by_id=find_user_by_id))

        @app.get("/")
        async def index():
            return {}

        with TestClient(app) as client:
            with pytest.raises(SessionRequiredError):
                client.get("/")
