"""Error taxonomy shared by the catalog client, auth flow, player and workers."""

from __future__ import annotations

import httpx


class MalCliError(Exception):
    """Base class for recoverable application errors."""

    kind = "internal"


class NetworkError(MalCliError):
    """I/O, TLS or timeout failure talking to a remote service."""

    kind = "network"


class HttpError(MalCliError):
    kind = "http"

    def __init__(self, code: int, message: str = "") -> None:
        super().__init__(message or f"HTTP {code}")
        self.code = code


class DecodeError(MalCliError):
    """A JSON body or image could not be decoded."""

    kind = "decode"


class AuthError(MalCliError):
    """Missing or expired token, or a failed refresh."""

    kind = "auth"


class NotFoundError(MalCliError):
    kind = "not_found"


class SubprocessError(MalCliError):
    kind = "subprocess"

    def __init__(self, stderr: str, code: int | None) -> None:
        super().__init__(f"exit code {code}: {stderr.strip()}")
        self.stderr = stderr
        self.code = code


class PortBindError(MalCliError):
    kind = "port_bind"


class CancelledError(MalCliError):
    kind = "cancelled"


class InternalError(MalCliError):
    """Invariant violation or unexpected missing value."""

    kind = "internal"


def map_httpx_error(exc: httpx.HTTPError) -> MalCliError:
    """Translate an httpx exception into the application taxonomy."""
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        if code == 401:
            return AuthError("the catalog rejected the access token")
        if code == 404:
            return NotFoundError(str(exc.request.url))
        return HttpError(code)
    if isinstance(exc, httpx.DecodingError):
        return DecodeError(str(exc))
    return NetworkError(str(exc) or type(exc).__name__)


__all__ = [
    "AuthError",
    "CancelledError",
    "DecodeError",
    "HttpError",
    "InternalError",
    "MalCliError",
    "NetworkError",
    "NotFoundError",
    "PortBindError",
    "SubprocessError",
    "map_httpx_error",
]
