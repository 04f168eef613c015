"""Delegated login: loopback callback listener plus the auth-server exchange.

The auth server runs the PKCE code exchange with the catalog provider and
then POSTs the resulting tokens to our loopback ``/callback``. This module
binds that listener, asks the server for the one-time authorization URL,
persists whatever arrives, and reports progress as a small state machine.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
import webbrowser
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any
from urllib.parse import parse_qs

import httpx

from mal_cli.errors import AuthError, CancelledError, DecodeError, PortBindError, map_httpx_error
from mal_cli.persistence import Tokens, TokenStore

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"
SHUTDOWN_GRACE_SECONDS = 1.0
DEFAULT_LOGIN_TIMEOUT_SECONDS = 300.0
CANCEL_POLL_SECONDS = 0.1

SUCCESS_HTML = b"""<html>
  <head><title>Success</title></head>
  <body style="font-family: sans-serif; text-align: center; padding-top: 50px;">
    <h1>Login successful!</h1>
    <p>You may now close this window and return to the terminal.</p>
  </body>
</html>
"""


class AuthState(enum.Enum):
    BIND = "bind"
    AWAIT = "await"
    RECEIVED = "received"
    PERSISTED = "persisted"
    DONE = "done"
    BIND_FAILED = "bind_failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


# ============================================================================
# Auth-server requests
# ============================================================================


def _parse_token_payload(payload: Any) -> Tokens:
    if not isinstance(payload, dict):
        raise DecodeError("token response is not an object")
    access = payload.get("access_token")
    refresh = payload.get("refresh_token")
    expires_in = payload.get("expires_in")
    if not isinstance(access, str) or not isinstance(refresh, str):
        raise DecodeError("token response is missing access_token/refresh_token")
    try:
        seconds = int(expires_in)
    except (TypeError, ValueError) as e:
        raise DecodeError("token response has an invalid expires_in") from e
    return Tokens.from_expires_in(access, refresh, seconds)


def request_login_url(auth_server: str, port: int, client: httpx.Client) -> str:
    """Ask the auth server for a one-time authorization URL bound to ``port``."""
    try:
        response = client.post(f"{auth_server}/oauth_url", data={"port": str(port)})
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise map_httpx_error(e) from e
    url = response.text.strip()
    if not url.startswith(("http://", "https://")):
        raise DecodeError("auth server returned an invalid login URL")
    return url


def refresh_tokens(auth_server: str, refresh_token: str, client: httpx.Client) -> Tokens:
    """Exchange a refresh token for a fresh token triple."""
    try:
        response = client.post(f"{auth_server}/refresh_token", data={"refresh_token": refresh_token})
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise AuthError(f"refresh rejected with HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise map_httpx_error(e) from e
    try:
        payload = response.json()
    except ValueError as e:
        raise DecodeError("refresh response is not JSON") from e
    return _parse_token_payload(payload)


# ============================================================================
# Loopback listener
# ============================================================================


class _CallbackHandler(BaseHTTPRequestHandler):
    server: CallbackServer

    def do_POST(self) -> None:  # noqa: N802
        if self.path.split("?", 1)[0] != CALLBACK_PATH:
            self.send_error(404)
            return
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length).decode("utf-8", errors="replace")
        form = {key: values[0] for key, values in parse_qs(body).items() if values}
        try:
            tokens = _parse_token_payload(form)
        except DecodeError as e:
            logger.warning("Malformed login callback: %s", e)
            self.send_error(400, "missing token fields")
            return
        try:
            self.server.on_tokens(tokens)
        except OSError:
            logger.error("Could not persist tokens from login callback", exc_info=True)
            self.send_error(500, "could not save tokens")
            return
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(SUCCESS_HTML)))
        self.end_headers()
        self.wfile.write(SUCCESS_HTML)
        self.server.schedule_shutdown()

    def do_GET(self) -> None:  # noqa: N802
        self.send_error(404)

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.debug("callback server: " + format, *args)


class CallbackServer(HTTPServer):
    """Single-use HTTP listener on 127.0.0.1 that accepts one token callback."""

    def __init__(self, port: int, on_tokens: Callable[[Tokens], None]) -> None:
        super().__init__(("127.0.0.1", port), _CallbackHandler)
        self.on_tokens = on_tokens
        self.received = threading.Event()
        self._shutdown_timer: threading.Timer | None = None

    @property
    def port(self) -> int:
        return int(self.server_address[1])

    def schedule_shutdown(self, grace: float = SHUTDOWN_GRACE_SECONDS) -> None:
        self.received.set()
        timer = threading.Timer(grace, self.shutdown)
        timer.daemon = True
        self._shutdown_timer = timer
        timer.start()


def bind_callback_server(
    port: int,
    max_retries: int,
    on_tokens: Callable[[Tokens], None],
) -> CallbackServer:
    """Bind on ``port``, retrying ``port + 1`` up to ``max_retries`` times."""
    last_error: OSError | None = None
    for candidate in range(port, port + max_retries + 1):
        try:
            server = CallbackServer(candidate, on_tokens)
        except OSError as e:
            logger.debug("Port %d unavailable: %s", candidate, e)
            last_error = e
            continue
        logger.debug("Callback server bound on port %d", candidate)
        return server
    raise PortBindError(
        f"no free port in {port}-{port + max_retries}: {last_error}"
    )


# ============================================================================
# Flow
# ============================================================================


class OAuthFlow:
    """Drives Bind → Await → Received → Persisted → Done.

    ``start`` returns the authorization URL; ``wait`` blocks until the
    callback has been persisted (or the timeout expires).
    """

    def __init__(
        self,
        *,
        token_store: TokenStore,
        auth_server: str,
        port: int,
        max_port_retries: int,
        client: httpx.Client | None = None,
        open_browser: Callable[[str], Any] = webbrowser.open,
    ) -> None:
        self._token_store = token_store
        self._auth_server = auth_server
        self._port = port
        self._max_port_retries = max_port_retries
        self._client = client
        self._open_browser = open_browser
        self._server: CallbackServer | None = None
        self._thread: threading.Thread | None = None
        self._cancelled = threading.Event()
        self.state = AuthState.BIND
        self.tokens: Tokens | None = None

    @property
    def port(self) -> int | None:
        return self._server.port if self._server is not None else None

    def _persist(self, tokens: Tokens) -> None:
        self.state = AuthState.RECEIVED
        self._token_store.save(tokens)
        self.tokens = tokens
        self.state = AuthState.PERSISTED

    def start(self) -> str:
        """Bind the listener, fetch the login URL and open it in a browser."""
        try:
            self._server = bind_callback_server(self._port, self._max_port_retries, self._persist)
        except PortBindError:
            self.state = AuthState.BIND_FAILED
            raise
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="oauth-callback", daemon=True
        )
        self._thread.start()
        self.state = AuthState.AWAIT

        client = self._client or httpx.Client(timeout=10.0)
        try:
            url = request_login_url(self._auth_server, self._server.port, client)
        except Exception:
            self.shutdown()
            raise
        finally:
            if self._client is None:
                client.close()
        try:
            self._open_browser(url)
        except webbrowser.Error:
            logger.info("Could not open a browser; the URL is shown on screen instead")
        return url

    def wait(self, timeout: float | None = DEFAULT_LOGIN_TIMEOUT_SECONDS) -> Tokens:
        """Join the listener.

        Raises AuthError on timeout and CancelledError once ``shutdown`` was
        called from another thread.
        """
        server = self._server
        thread = self._thread
        if server is None or thread is None:
            raise AuthError("login flow was not started")
        deadline = None if timeout is None else time.monotonic() + timeout
        while not server.received.is_set():
            if self._cancelled.is_set():
                self.state = AuthState.CANCELLED
                raise CancelledError("login was cancelled")
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                self.state = AuthState.TIMEOUT
                self.shutdown()
                raise AuthError("timed out waiting for the login callback")
            server.received.wait(CANCEL_POLL_SECONDS if remaining is None else min(remaining, CANCEL_POLL_SECONDS))
        thread.join(SHUTDOWN_GRACE_SECONDS * 5)
        server.server_close()
        if self.tokens is None:
            raise AuthError("login callback did not deliver tokens")
        self.state = AuthState.DONE
        return self.tokens

    def shutdown(self) -> None:
        """Stop the listener; a pending ``wait`` raises CancelledError."""
        self._cancelled.set()
        server = self._server
        if server is None:
            return
        server.shutdown()
        server.server_close()


__all__ = [
    "CALLBACK_PATH",
    "AuthState",
    "CallbackServer",
    "OAuthFlow",
    "bind_callback_server",
    "refresh_tokens",
    "request_login_url",
]
