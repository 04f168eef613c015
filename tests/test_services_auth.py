"""Tests for the delegated login flow, token refresh and the episode provider."""

from __future__ import annotations

import json
import socket
import threading
import time
from pathlib import Path

import httpx
import pytest

from mal_cli.background import BackgroundUpdate
from mal_cli.errors import AuthError, CancelledError, DecodeError, PortBindError
from mal_cli.events import BackgroundNotice, ShowError
from mal_cli.persistence import TokenStore, Tokens
from mal_cli.screens.login import LOGIN_SUCCESS, LoginScreen
from mal_cli.services.auth import (
    AuthState,
    OAuthFlow,
    bind_callback_server,
    refresh_tokens,
    request_login_url,
)
from mal_cli.services.episodes import EpisodeProvider, ShowEdge, pick_best_show

LOGIN_URL = "https://myanimelist.net/v1/oauth2/authorize?state=abc"


def _auth_client(seen: list[httpx.Request]) -> httpx.Client:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/oauth_url":
            return httpx.Response(200, text=LOGIN_URL + "\n")
        if request.url.path == "/refresh_token":
            return httpx.Response(
                200, json={"access_token": "new", "refresh_token": "r2", "expires_in": 3600}
            )
        return httpx.Response(404)

    return httpx.Client(transport=httpx.MockTransport(handler))


class TestAuthServerRequests:
    def test_request_login_url_posts_port(self):
        seen: list[httpx.Request] = []
        url = request_login_url("https://auth.example", 53400, _auth_client(seen))

        assert url == LOGIN_URL
        assert seen[0].method == "POST"
        assert seen[0].content == b"port=53400"

    def test_request_login_url_rejects_non_url(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200, text="oops")))
        with pytest.raises(DecodeError):
            request_login_url("https://auth.example", 1, client)

    def test_refresh_tokens_parses_payload(self):
        seen: list[httpx.Request] = []
        tokens = refresh_tokens("https://auth.example", "r1", _auth_client(seen))

        assert tokens.access_token == "new"
        assert tokens.refresh_token == "r2"
        assert tokens.expires_at > time.time()
        assert seen[0].content == b"refresh_token=r1"

    def test_refresh_rejection_is_auth_error(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(400)))
        with pytest.raises(AuthError):
            refresh_tokens("https://auth.example", "r1", client)


class TestCallbackServer:
    def test_busy_port_moves_to_next(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen()
        busy = blocker.getsockname()[1]
        try:
            server = bind_callback_server(busy, 5, lambda tokens: None)
        except PortBindError:
            pytest.skip("no free port next to the blocked one")
        try:
            assert busy < server.port <= busy + 5
        finally:
            server.server_close()
            blocker.close()

    def test_no_retries_left_raises(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen()
        try:
            with pytest.raises(PortBindError):
                bind_callback_server(blocker.getsockname()[1], 0, lambda tokens: None)
        finally:
            blocker.close()


class TestOAuthFlow:
    def test_login_persists_posted_tokens(self, tmp_path: Path):
        store = TokenStore(tmp_path / "tokens")
        seen: list[httpx.Request] = []
        opened: list[str] = []
        flow = OAuthFlow(
            token_store=store,
            auth_server="https://auth.example",
            port=0,
            max_port_retries=0,
            client=_auth_client(seen),
            open_browser=opened.append,
        )

        url = flow.start()
        assert url == LOGIN_URL
        assert opened == [LOGIN_URL]
        assert flow.state is AuthState.AWAIT
        assert seen[0].content == f"port={flow.port}".encode()

        response = httpx.post(
            f"http://127.0.0.1:{flow.port}/callback",
            data={"access_token": "acc", "refresh_token": "ref", "expires_in": "3600"},
            trust_env=False,
        )
        tokens = flow.wait(timeout=5)

        assert response.status_code == 200
        assert "Login successful" in response.text
        assert tokens.access_token == "acc"
        assert store.load().refresh_token == "ref"
        assert flow.state is AuthState.DONE

    def test_malformed_callback_is_rejected(self, tmp_path: Path):
        store = TokenStore(tmp_path / "tokens")
        flow = OAuthFlow(
            token_store=store,
            auth_server="https://auth.example",
            port=0,
            max_port_retries=0,
            client=_auth_client([]),
            open_browser=lambda url: None,
        )
        flow.start()
        try:
            response = httpx.post(
                f"http://127.0.0.1:{flow.port}/callback", data={"access_token": "x"}, trust_env=False
            )
            wrong_path = httpx.post(f"http://127.0.0.1:{flow.port}/other", data={}, trust_env=False)
        finally:
            flow.shutdown()

        assert response.status_code == 400
        assert wrong_path.status_code == 404
        assert store.load() is None

    def test_wait_times_out(self, tmp_path: Path):
        flow = OAuthFlow(
            token_store=TokenStore(tmp_path / "tokens"),
            auth_server="https://auth.example",
            port=0,
            max_port_retries=0,
            client=_auth_client([]),
            open_browser=lambda url: None,
        )
        flow.start()

        with pytest.raises(AuthError):
            flow.wait(timeout=0.05)
        assert flow.state is AuthState.TIMEOUT

    def test_shutdown_cancels_a_pending_wait(self, tmp_path: Path):
        flow = OAuthFlow(
            token_store=TokenStore(tmp_path / "tokens"),
            auth_server="https://auth.example",
            port=0,
            max_port_retries=0,
            client=_auth_client([]),
            open_browser=lambda url: None,
        )
        flow.start()
        threading.Timer(0.1, flow.shutdown).start()

        started = time.monotonic()
        with pytest.raises(CancelledError):
            flow.wait(timeout=30)
        assert time.monotonic() - started < 5
        assert flow.state is AuthState.CANCELLED

    def test_wait_before_start_raises(self, tmp_path: Path):
        flow = OAuthFlow(
            token_store=TokenStore(tmp_path / "tokens"),
            auth_server="https://auth.example",
            port=0,
            max_port_retries=0,
        )
        with pytest.raises(AuthError):
            flow.wait(timeout=0)


class _InstantFlow:
    """Stand-in for OAuthFlow that "receives" tokens as soon as it is awaited."""

    def __init__(self, *, token_store, **kwargs) -> None:
        self.token_store = token_store
        self.shut = False

    def start(self) -> str:
        return "https://login.test/x"

    def wait(self, timeout=None) -> Tokens:
        tokens = Tokens("acc", "ref", int(time.time()) + 3600)
        self.token_store.save(tokens)
        return tokens

    def shutdown(self) -> None:
        self.shut = True


class _LocalFlow(OAuthFlow):
    """Real flow bound to an ephemeral port with a mocked auth server."""

    def __init__(self, *, token_store, **kwargs) -> None:
        super().__init__(
            token_store=token_store,
            auth_server="https://auth.example",
            port=0,
            max_port_retries=0,
            client=_auth_client([]),
            open_browser=lambda url: None,
        )


class TestLoginScreen:
    def test_login_screen_types_url_then_reports_success(self, make_info, fake_catalog_cls, monkeypatch):
        monkeypatch.setattr("mal_cli.screens.login.OAuthFlow", _InstantFlow)
        monkeypatch.setattr("mal_cli.screens.login.URL_CHAR_DELAY_SECONDS", 0)
        catalog = fake_catalog_cls(logged_in=False)
        info = make_info(catalog)
        screen = LoginScreen(info)

        handle = screen.background()
        assert handle is not None
        assert handle.join(timeout=5)

        urls = []
        while (event := info.bus.recv(timeout=0.1)) is not None:
            assert isinstance(event, BackgroundNotice)
            screen.apply_update(event.update)
            urls.append(screen.login_url)

        assert urls[-1] == LOGIN_SUCCESS
        assert "https://login.test/x" in urls
        assert info.tokens.load().access_token == "acc"
        assert ("update_user_login",) in catalog.calls

    def test_leaving_mid_login_ends_worker_quietly(self, make_info, fake_catalog_cls, monkeypatch):
        monkeypatch.setattr("mal_cli.screens.login.OAuthFlow", _LocalFlow)
        monkeypatch.setattr("mal_cli.screens.login.URL_CHAR_DELAY_SECONDS", 0)
        catalog = fake_catalog_cls(logged_in=False)
        info = make_info(catalog)
        screen = LoginScreen(info)

        handle = screen.background()
        assert handle is not None
        while screen.login_url != LOGIN_URL:
            event = info.bus.recv(timeout=5)
            assert isinstance(event, BackgroundNotice)
            screen.apply_update(event.update)

        screen.dispose()
        assert handle.join(timeout=5)

        assert handle.error is None
        assert screen.flow.state is AuthState.CANCELLED
        assert not any(isinstance(event, ShowError) for event in info.bus.drain(timeout=0.2))
        assert ("update_user_login",) not in catalog.calls

    def test_logged_in_user_gets_no_worker(self, make_info):
        screen = LoginScreen(make_info())
        assert screen.background() is None

    def test_apply_update_ignores_other_fields(self, make_info):
        screen = LoginScreen(make_info())
        screen.apply_update(BackgroundUpdate("LoginScreen").set("login_url", 42))
        assert screen.login_url == ""


class TestEpisodeProvider:
    def _provider(self, payload, seen=None) -> EpisodeProvider:
        def handler(request: httpx.Request) -> httpx.Response:
            if seen is not None:
                seen.append(request)
            return httpx.Response(200, json=payload)

        return EpisodeProvider(httpx.Client(transport=httpx.MockTransport(handler)), api_url="https://eps.test/api")

    def test_best_match_wins(self):
        payload = {
            "data": {
                "shows": {
                    "edges": [
                        {"_id": "a", "name": "Frieren Movie", "availableEpisodes": {"sub": 1}},
                        {"_id": "b", "name": "Sousou no Frieren", "availableEpisodes": {"sub": 28}},
                    ]
                }
            }
        }
        seen: list[httpx.Request] = []
        count = self._provider(payload, seen).fetch_released_episodes(["Sousou no Frieren", "Frieren"])

        assert count == 28
        variables = json.loads(seen[0].url.params["variables"])
        assert variables["search"]["query"] == "Sousou no Frieren"

    def test_no_match_returns_none(self):
        payload = {"data": {"shows": {"edges": [{"name": "Completely Different", "availableEpisodes": {"sub": 3}}]}}}
        assert self._provider(payload).fetch_released_episodes(["Sousou no Frieren"]) is None

    def test_garbage_payload_returns_none(self):
        assert self._provider(["nope"]).fetch_released_episodes(["x"]) is None

    def test_http_failure_returns_none(self):
        provider = EpisodeProvider(
            httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(503))),
            api_url="https://eps.test/api",
        )
        assert provider.fetch_released_episodes(["x"]) is None

    def test_empty_titles_skip_request(self):
        assert self._provider({}).fetch_released_episodes(["", ""]) is None

    def test_pick_best_show_without_edges(self):
        assert pick_best_show(["x"], []) is None
        edge = ShowEdge("1", "Bocchi the Rock!", 12)
        assert pick_best_show(["Bocchi the Rock"], [edge]) is edge
