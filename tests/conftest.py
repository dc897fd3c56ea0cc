"""Pytest configuration and fixtures.

``FakeProvider`` scripts an identity server behind ``httpx.MockTransport``:
discovery, the authorization endpoint, the login page with its embedded
``modelJson`` blob, the credential POST and the redirects to the callback.
"""

from __future__ import annotations

import html
import itertools
import json
from collections.abc import Callable
from urllib.parse import parse_qs, urlencode

import httpx
import pytest

from luminus_auth.core.config import ProviderSettings
from luminus_auth.core.logging import ProtocolLogger
from luminus_auth.core.oidc import Authorization

BASE_URL = "https://idp"
CALLBACK_URL = "https://app/callback"
XSRF_NAME = "__RequestVerificationToken"


def login_page_html(model: dict | None, encode: bool = True) -> str:
    """Render a login page embedding ``model`` as the modelJson blob."""
    if model is None:
        blob_element = ""
    else:
        blob = json.dumps(model)
        if encode:
            blob = html.escape(blob, quote=True)
        blob_element = f'<script id="modelJson" type="application/json">\n  {blob}\n</script>'
    return (
        "<!DOCTYPE html><html><head><title>Sign in</title></head>"
        f"<body><div class='login'>{blob_element}</div></body></html>"
    )


class FakeProvider:
    """Scripted identity provider."""

    def __init__(self, base_url: str = BASE_URL, callback_url: str = CALLBACK_URL) -> None:
        self.base_url = base_url
        self.callback_url = callback_url
        self.username = "e0123456"
        self.password = "hunter2"
        self.xsrf_value = "t1"
        self.login_url = "/account/login"
        self.session_id = "sess1"
        self.id_tokens = itertools.count(1)
        self.requests: list[httpx.Request] = []
        # Overrides keyed by (method, path), for shaping failures
        self.overrides: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.base_url}/auth"

    def model(self) -> dict:
        return {
            "antiForgery": {"name": XSRF_NAME, "value": self.xsrf_value},
            "loginUrl": self.login_url,
        }

    def requests_to(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key in self.overrides:
            return self.overrides[key](request)

        if key == ("GET", "/v2/auth/.well-known/openid-configuration"):
            return httpx.Response(200, json={"authorization_endpoint": self.authorization_endpoint})
        if key == ("GET", "/auth"):
            return self._authorize(request)
        if key == ("GET", "/account/login"):
            return httpx.Response(
                200,
                html=login_page_html(self.model()),
                headers=[("Set-Cookie", "xsrf.cookie=abc; path=/; httponly")],
            )
        if key == ("POST", "/account/login"):
            return self._submit(request)
        if key == ("GET", "/auth/callback"):
            return httpx.Response(302, headers={"Location": self._callback_location(request)})
        return httpx.Response(404, text=f"no route for {request.method} {request.url.path}")

    def _cookies(self, request: httpx.Request) -> dict[str, str]:
        header = request.headers.get("cookie", "")
        pairs = [p.strip().split("=", 1) for p in header.split(";") if "=" in p]
        return {name: value for name, value in pairs}

    def _authorize(self, request: httpx.Request) -> httpx.Response:
        if self._cookies(request).get("idsrv") == self.session_id:
            return httpx.Response(302, headers={"Location": self._callback_location(request)})
        return httpx.Response(
            302,
            headers=[
                ("Location", f"/account/login?ReturnUrl={request.url.path}"),
                ("Set-Cookie", "signin.flow=f1; path=/"),
            ],
        )

    def _submit(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        expected = {"username": self.username, "password": self.password, XSRF_NAME: self.xsrf_value}
        if form != expected:
            return httpx.Response(200, html=login_page_html(self.model()))
        return httpx.Response(
            302,
            headers=[
                ("Location", "/auth/callback?client_id=verso"),
                ("Set-Cookie", f"idsrv={self.session_id}; path=/; secure; httponly"),
                ("Set-Cookie", "idsrv.session=s2; path=/"),
                ("Set-Cookie", "xsrf.cookie=; expires=Thu, 01 Jan 1970 00:00:00 GMT"),
            ],
        )

    def _callback_location(self, request: httpx.Request) -> str:
        fragment = urlencode(
            {
                "id_token": f"JWT{next(self.id_tokens)}",
                "access_token": "AT",
                "token_type": "Bearer",
                "expires_in": "3600",
                "state": "xyz",
            }
        )
        return f"{self.callback_url}#{fragment}"


def counting_bytes() -> Callable[[int], bytes]:
    """Deterministic byte source: 0x00.., then 0x01.., and so on."""
    counter = itertools.count()

    def random_bytes(size: int) -> bytes:
        return bytes([next(counter) % 256]) * size

    return random_bytes


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def settings() -> ProviderSettings:
    return ProviderSettings(base_url=BASE_URL, redirect_uri=CALLBACK_URL)


@pytest.fixture
def protocol_logger() -> ProtocolLogger:
    return ProtocolLogger()


@pytest.fixture
def auth(provider: FakeProvider, settings: ProviderSettings, protocol_logger: ProtocolLogger) -> Authorization:
    return Authorization(
        settings=settings,
        protocol_logger=protocol_logger,
        random_bytes=counting_bytes(),
        transport=provider.transport,
    )


@pytest.fixture
def byte_source() -> Callable[[int], bytes]:
    return counting_bytes()


@pytest.fixture
def render_login_page() -> Callable[..., str]:
    return login_page_html
