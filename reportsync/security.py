"""Security-related helpers.

Provides webhook signature verification for inbound tracker events and optional
HTTP Basic auth protection for the admin API.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

SIGNATURE_PREFIX = "sha256="


class WebhookSignatureError(Exception):
    """An inbound webhook failed authentication."""


class MissingSignatureError(WebhookSignatureError):
    def __init__(self):
        super().__init__("Missing signature")


class InvalidSignatureError(WebhookSignatureError):
    def __init__(self):
        super().__init__("Invalid signature")


def compute_signature(body: bytes, secret: str) -> str:
    """Signature header value GitHub sends for ``body``: ``sha256=<hex hmac>``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_webhook_signature(body: bytes, signature: Optional[str], secret: Optional[str]) -> None:
    """Raise unless ``signature`` authenticates ``body`` under ``secret``.

    An empty ``secret`` disables checking and every delivery is accepted.
    """
    if not secret:
        return
    if not signature:
        raise MissingSignatureError()

    expected = compute_signature(body, secret).encode("ascii")
    received = signature.encode("utf-8", errors="replace")
    if not hmac.compare_digest(received, expected):
        raise InvalidSignatureError()


@dataclass(frozen=True)
class BasicAuthCredentials:
    username: str
    password: str


def _parse_basic_auth_header(header_value: str) -> BasicAuthCredentials | None:
    """Parse an Authorization header containing HTTP Basic auth."""
    if not header_value:
        return None

    scheme, _, param = header_value.partition(" ")
    if scheme.lower() != "basic" or not param:
        return None

    try:
        decoded = base64.b64decode(param, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    username, sep, password = decoded.partition(":")
    if sep != ":":
        return None

    return BasicAuthCredentials(username=username, password=password)


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """Protect routes via HTTP Basic auth.

    Paths in ``allow_paths`` and paths under ``allow_prefixes`` pass through.
    """

    def __init__(
        self,
        app,
        *,
        username: str,
        password: str,
        allow_paths: set[str] | None = None,
        allow_prefixes: Iterable[str] = (),
        realm: str = "ReportSync",
    ):
        super().__init__(app)
        self._username = username
        self._password = password
        self._allow_paths = allow_paths or {"/health"}
        self._allow_prefixes = tuple(allow_prefixes)
        self._realm = realm

    def _unauthorized(self) -> Response:
        return Response(
            content="Unauthorized",
            status_code=401,
            headers={"WWW-Authenticate": f'Basic realm="{self._realm}", charset="UTF-8"'},
        )

    def _is_public(self, path: str) -> bool:
        return path in self._allow_paths or path.startswith(self._allow_prefixes)

    async def dispatch(self, request: Request, call_next):
        if self._is_public(request.url.path):
            return await call_next(request)

        creds = _parse_basic_auth_header(request.headers.get("Authorization", ""))
        if creds is None:
            return self._unauthorized()

        ok_user = secrets.compare_digest(creds.username, self._username)
        ok_pass = secrets.compare_digest(creds.password, self._password)
        if not (ok_user and ok_pass):
            return self._unauthorized()

        return await call_next(request)
