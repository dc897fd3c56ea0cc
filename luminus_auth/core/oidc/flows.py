"""Headless login and silent renewal against the LumiNUS identity provider.

The provider implements the OIDC implicit flow: after the user has
authenticated, the authorization endpoint redirects to the client's callback
URL with the tokens in the URL fragment. This module drives that flow without
a browser:

- Login: discovery -> authorization URL -> login page scrape -> credential
  POST -> two redirects -> callback fragment
- Renewal: discovery -> authorization URL, answered directly with the
  callback because the provider's session cookie is already in the jar

A session moves from UNAUTHENTICATED to AUTHENTICATED only inside
``handle_callback``, or is restored already AUTHENTICATED by
``Authorization.resume``. A failed login or renewal never touches the token.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any
from urllib.parse import parse_qsl, urljoin, urlsplit

import httpx

from luminus_auth.core.config import ProviderSettings
from luminus_auth.core.exceptions import (
    CallbackError,
    InvalidCredentialsError,
    NotLoggedInError,
)
from luminus_auth.core.logging import ProtocolLog, ProtocolLogger, get_protocol_logger
from luminus_auth.core.oidc.cookies import CookieJar
from luminus_auth.core.oidc.discovery import create_authorization_request
from luminus_auth.core.oidc.http import HTTPExchanger, extract_redirect_location
from luminus_auth.core.oidc.scraper import fetch_login_page_info
from luminus_auth.core.oidc.tokens import RandomBytes
from luminus_auth.core.oidc.utils import decode_jwt

logger = logging.getLogger(__name__)


class AuthorizationState(StrEnum):
    """Authorization state of a session."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


@dataclass
class TokenResponse:
    """Tokens decoded from the callback URL fragment."""

    id_token: str
    access_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None
    scope: str | None = None
    state: str | None = None
    session_state: str | None = None
    code: str | None = None

    raw_response: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_fragment(cls, fragment: str) -> TokenResponse:
        """Decode a query-string encoded fragment.

        Empty segments are skipped and a bare key decodes to an empty value.

        Raises:
            CallbackError: If the fragment has no id_token.
        """
        data = dict(parse_qsl(fragment, keep_blank_values=True))
        id_token = data.get("id_token")
        if not id_token:
            raise CallbackError("Invalid callback: no id_token in response")

        expires_in = data.get("expires_in")
        return cls(
            id_token=id_token,
            access_token=data.get("access_token"),
            token_type=data.get("token_type"),
            expires_in=int(expires_in) if expires_in and expires_in.isdigit() else None,
            scope=data.get("scope"),
            state=data.get("state"),
            session_state=data.get("session_state"),
            code=data.get("code"),
            raw_response=data,
        )


def parse_callback_url(callback_url: str) -> TokenResponse:
    """Extract the TokenResponse from the fragment of ``callback_url``.

    Raises:
        CallbackError: If the URL has no fragment or the fragment is unusable.
    """
    fragment = urlsplit(callback_url).fragment
    if not fragment:
        raise CallbackError("Invalid callback")
    return TokenResponse.from_fragment(fragment)


class Authorization:
    """A LumiNUS session: an identity token plus the provider's cookies.

    Not safe for concurrent use; serialize calls per instance.
    """

    def __init__(
        self,
        settings: ProviderSettings | None = None,
        protocol_logger: ProtocolLogger | None = None,
        random_bytes: RandomBytes = secrets.token_bytes,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Create an unauthenticated session.

        Args:
            settings: Provider settings; defaults to the LumiNUS constants.
            protocol_logger: Optional protocol logger for HTTP traffic capture.
            random_bytes: Byte source for the state and nonce parameters.
            transport: Optional httpx transport, used by tests.
        """
        self.settings = settings or ProviderSettings()
        self.cookies = CookieJar()
        self.last_response: TokenResponse | None = None
        self.protocol_log: ProtocolLog | None = None
        self._token: str | None = None
        self._random_bytes = random_bytes
        self._protocol_logger = protocol_logger or get_protocol_logger()
        self._exchanger = HTTPExchanger(
            cookies=self.cookies,
            protocol_logger=self._protocol_logger,
            timeout=self.settings.timeout,
            verify_ssl=self.settings.verify_ssl,
            transport=transport,
        )

    @classmethod
    def resume(cls, token: str, session_cookie: str, **kwargs: Any) -> Authorization:
        """Restore a session saved by the caller after an earlier login.

        Apart from ``handle_callback``, this is the only place a session
        becomes AUTHENTICATED. ``last_response`` stays None.

        Args:
            token: The identity token from the earlier login or renewal.
            session_cookie: Value of the provider's session cookie (``idsrv``).
            **kwargs: Passed to the constructor.
        """
        if not token or not session_cookie:
            raise NotLoggedInError("Please login first.")
        auth = cls(**kwargs)
        auth.cookies.merge([f"{auth.settings.session_cookie}={session_cookie}"])
        auth._authenticate(token)
        return auth

    @property
    def token(self) -> str | None:
        """The current identity token, or None before the first login."""
        return self._token

    @property
    def state(self) -> AuthorizationState:
        if self._token is None:
            return AuthorizationState.UNAUTHENTICATED
        return AuthorizationState.AUTHENTICATED

    @property
    def session_cookie(self) -> str | None:
        """Value of the provider's session cookie, needed to renew later."""
        return self.cookies.get(self.settings.session_cookie)

    @property
    def token_expires_at(self) -> datetime | None:
        """Expiry of the current token, if it carries an ``exp`` claim."""
        if self._token is None:
            return None
        return decode_jwt(self._token).expiration

    def close(self) -> None:
        self._exchanger.close()

    def __enter__(self) -> Authorization:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @contextmanager
    def _flow(self, flow_type: str) -> Iterator[None]:
        flow_id = f"{flow_type}_{secrets.token_hex(8)}"
        self._protocol_logger.start_flow(flow_id, flow_type)
        try:
            yield
        finally:
            self.protocol_log = self._protocol_logger.end_flow()

    def login(self, username: str, password: str) -> bool:
        """Log in with a username and password.

        Returns:
            True once the session holds a fresh token.

        Raises:
            InvalidCredentialsError: If the provider re-renders the login form.
            AuthError: For any other failure; the previous token is kept.
        """
        with self._flow("login"):
            request = create_authorization_request(self._exchanger, self.settings, self._random_bytes)
            login_info = fetch_login_page_info(self._exchanger, request.url)

            login_url = urljoin(self.settings.base_url, login_info.login_url)
            params = login_info.anti_forgery.build_login_params(username, password)

            logger.info(f"Submitting credentials for {username} to {login_url}")
            response = self._exchanger.post(login_url, params)
            if not 300 <= response.status_code < 400:
                raise InvalidCredentialsError("Invalid credentials")

            next_url = extract_redirect_location(response)
            callback_url = extract_redirect_location(self._exchanger.get(next_url))
            return self.handle_callback(callback_url)

    def renew(self) -> bool:
        """Obtain a fresh token using the provider's session cookie.

        Raises:
            NotLoggedInError: If the session has never logged in. No request is made.
            AuthError: For any other failure; the previous token is kept.
        """
        if self._token is None:
            raise NotLoggedInError("Please login first.")

        with self._flow("renew"):
            request = create_authorization_request(self._exchanger, self.settings, self._random_bytes)
            callback_url = extract_redirect_location(self._exchanger.get(request.url))
            logger.debug(f"Renewal redirected to {urlsplit(callback_url)._replace(fragment='').geturl()}")
            return self.handle_callback(callback_url)

    def handle_callback(self, callback_url: str) -> bool:
        """Read the tokens from the callback URL and finish the transition.

        All cookies but the provider's session cookie are discarded.

        Raises:
            CallbackError: If the URL has no fragment or no id_token.
            CookieError: If the session cookie was never received.
        """
        response = parse_callback_url(callback_url)
        self.cookies.retain_only(self.settings.session_cookie)
        self._authenticate(response.id_token, response)
        logger.info("Received identity token")
        return True

    def _authenticate(self, token: str, response: TokenResponse | None = None) -> None:
        # Sole writer of the token; callers have validated it already
        self._token = token
        self.last_response = response
