"""Tests for the login/renewal state machine."""

import base64
import json
import re
from datetime import UTC, datetime
from urllib.parse import parse_qs

import httpx
import pytest

from luminus_auth.core.exceptions import (
    CallbackError,
    CookieError,
    ExpectedRedirectError,
    InvalidCredentialsError,
    NotLoggedInError,
)
from luminus_auth.core.oidc.flows import (
    Authorization,
    AuthorizationState,
    TokenResponse,
    parse_callback_url,
)


def _make_jwt(payload: dict) -> str:
    def b64(data: dict) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")

    return f"{b64({'alg': 'RS256', 'typ': 'JWT'})}.{b64(payload)}.signature"


class TestLogin:
    """Tests for Authorization.login."""

    def test_end_to_end(self, auth, provider):
        """Test the full discovery, scrape, submit and callback sequence."""
        provider.id_tokens = iter([123])

        assert auth.state == AuthorizationState.UNAUTHENTICATED
        assert auth.login("e0123456", "hunter2") is True

        assert auth.token == "JWT123"
        assert auth.state == AuthorizationState.AUTHENTICATED
        assert auth.cookies.as_dict() == {"idsrv": "sess1"}
        assert auth.session_cookie == "sess1"

        paths = [(r.method, r.url.path) for r in provider.requests]
        assert paths == [
            ("GET", "/v2/auth/.well-known/openid-configuration"),
            ("GET", "/auth"),
            ("GET", "/account/login"),
            ("POST", "/account/login"),
            ("GET", "/auth/callback"),
        ]

    def test_authorization_url_parameters(self, auth, provider):
        """Test the query sent to the authorization endpoint."""
        auth.login("e0123456", "hunter2")

        params = {k: v[0] for k, v in parse_qs(provider.requests_to("GET", "/auth")[0].url.query.decode()).items()}
        assert params["client_id"] == "verso"
        assert params["redirect_uri"] == "https://app/callback"
        assert set(params["response_type"].split()) == {"id_token", "token", "code"}
        assert params["scope"].split()[:4] == ["profile", "email", "role", "openid"]
        assert params["state"] == "00" * 16
        assert params["nonce"] == "01" * 16
        assert re.fullmatch(r"[0-9a-f]{32}", params["state"])

    def test_submitted_form(self, auth, provider):
        """Test that the form carries credentials and the scraped anti-forgery field."""
        auth.login("e0123456", "hunter2")

        post = provider.requests_to("POST", "/account/login")[0]
        form = {k: v[0] for k, v in parse_qs(post.content.decode()).items()}
        assert form == {
            "username": "e0123456",
            "password": "hunter2",
            "__RequestVerificationToken": "t1",
        }
        assert post.headers["cookie"] == "signin.flow=f1; xsrf.cookie=abc"

    def test_login_url_resolved_against_base(self, auth, provider):
        """Test that an absolute-path loginUrl is posted to the provider origin."""
        provider.login_url = "/account/login?signin=abc"

        auth.login("e0123456", "hunter2")

        post = provider.requests_to("POST", "/account/login")[0]
        assert str(post.url) == "https://idp/account/login?signin=abc"

    def test_token_response_kept(self, auth):
        """Test that the decoded fragment is available after login."""
        auth.login("e0123456", "hunter2")

        assert auth.last_response.access_token == "AT"
        assert auth.last_response.token_type == "Bearer"
        assert auth.last_response.expires_in == 3600

    def test_protocol_log(self, auth):
        """Test that the flow's exchanges are collected."""
        auth.login("e0123456", "hunter2")

        assert auth.protocol_log.flow_type == "login"
        assert len(auth.protocol_log.exchanges) == 5
        assert auth.protocol_log.completed_at is not None

    def test_invalid_credentials(self, auth):
        """Test that a re-rendered login form means rejected credentials."""
        with pytest.raises(InvalidCredentialsError, match="Invalid credentials"):
            auth.login("e0123456", "wrong")

        assert auth.token is None
        assert auth.state == AuthorizationState.UNAUTHENTICATED

    def test_failure_after_cookies_collected(self, auth, provider):
        """Test that a broken redirect chain leaves the token unset."""
        provider.overrides[("GET", "/auth/callback")] = lambda request: httpx.Response(200, text="?")

        with pytest.raises(ExpectedRedirectError):
            auth.login("e0123456", "hunter2")

        assert auth.token is None
        assert "idsrv" in auth.cookies

    def test_missing_session_cookie(self, auth, provider):
        """Test that a callback without a prior idsrv cookie is an error."""
        provider.overrides[("POST", "/account/login")] = lambda request: httpx.Response(
            302, headers={"Location": "/auth/callback"}
        )

        with pytest.raises(CookieError):
            auth.login("e0123456", "hunter2")

        assert auth.token is None

    def test_failed_login_keeps_previous_token(self, auth):
        """Test that a second, failed login does not clear the token."""
        auth.login("e0123456", "hunter2")
        # Without idsrv the provider shows the login form again
        auth.cookies.clear()

        with pytest.raises(InvalidCredentialsError):
            auth.login("e0123456", "wrong")

        assert auth.token == "JWT1"


class TestRenew:
    """Tests for Authorization.renew."""

    def test_requires_login(self, auth, provider):
        """Test that renewing a fresh session fails without any request."""
        with pytest.raises(NotLoggedInError, match="Please login first"):
            auth.renew()

        assert provider.requests == []

    def test_renew_uses_session_cookie(self, auth, provider):
        """Test silent renewal after a login."""
        auth.login("e0123456", "hunter2")
        provider.requests.clear()

        assert auth.renew() is True

        assert auth.token == "JWT2"
        assert auth.cookies.as_dict() == {"idsrv": "sess1"}
        assert [r.url.path for r in provider.requests] == ["/v2/auth/.well-known/openid-configuration", "/auth"]
        assert provider.requests[1].headers["cookie"] == "idsrv=sess1"
        assert auth.protocol_log.flow_type == "renew"

    def test_expired_session_keeps_token(self, auth, provider):
        """Test that a renewal answered with the login page fails cleanly."""
        auth.login("e0123456", "hunter2")
        provider.session_id = "rotated"

        with pytest.raises(CallbackError, match="Invalid callback"):
            auth.renew()

        assert auth.token == "JWT1"
        assert auth.state == AuthorizationState.AUTHENTICATED

    def test_resume(self, provider, settings, protocol_logger):
        """Test renewal of a session restored from a saved token and cookie."""
        auth = Authorization.resume(
            "OLD",
            "sess1",
            settings=settings,
            protocol_logger=protocol_logger,
            transport=provider.transport,
        )

        assert auth.state == AuthorizationState.AUTHENTICATED
        auth.renew()

        assert auth.token == "JWT1"

    def test_resume_makes_no_request(self, provider, settings, protocol_logger):
        """Test that resuming restores state without contacting the provider."""
        auth = Authorization.resume(
            "OLD",
            "sess1",
            settings=settings,
            protocol_logger=protocol_logger,
            transport=provider.transport,
        )

        assert auth.token == "OLD"
        assert auth.session_cookie == "sess1"
        assert auth.last_response is None
        assert provider.requests == []

    def test_resume_requires_values(self):
        """Test that a session cannot be resumed from empty values."""
        with pytest.raises(NotLoggedInError):
            Authorization.resume("", "sess1")


class TestHandleCallback:
    """Tests for Authorization.handle_callback."""

    def test_sets_token_and_prunes_cookies(self, auth):
        """Test that only the session cookie survives the callback."""
        auth.cookies.merge(["idsrv=sess1", "signin.flow=f1", "xsrf.cookie=abc"])

        assert auth.handle_callback("https://app/callback#id_token=ABC&state=xyz") is True

        assert auth.token == "ABC"
        assert auth.cookies.as_dict() == {"idsrv": "sess1"}
        assert auth.last_response.state == "xyz"

    def test_no_fragment(self, auth):
        """Test that a callback without a fragment is rejected."""
        auth.cookies.merge(["idsrv=sess1", "other=1"])

        with pytest.raises(CallbackError, match="Invalid callback"):
            auth.handle_callback("https://app/callback?id_token=ABC")

        assert auth.token is None
        assert auth.cookies.as_dict() == {"idsrv": "sess1", "other": "1"}

    def test_empty_fragment(self, auth):
        """Test that an empty fragment is rejected."""
        auth.cookies.merge(["idsrv=sess1"])

        with pytest.raises(CallbackError):
            auth.handle_callback("https://app/callback#")

    def test_missing_id_token(self, auth):
        """Test that a fragment without id_token is rejected."""
        auth.cookies.merge(["idsrv=sess1"])

        with pytest.raises(CallbackError):
            auth.handle_callback("https://app/callback#access_token=AT&state=xyz")

        assert auth.token is None

    def test_missing_session_cookie(self, auth):
        """Test that the token is not set when idsrv is absent."""
        auth.cookies.merge(["other=1"])

        with pytest.raises(CookieError):
            auth.handle_callback("https://app/callback#id_token=ABC")

        assert auth.token is None

    def test_token_expiry(self, auth):
        """Test that the expiry of the received token is exposed."""
        exp = int(datetime(2030, 1, 1, tzinfo=UTC).timestamp())
        auth.cookies.merge(["idsrv=sess1"])

        auth.handle_callback(f"https://app/callback#id_token={_make_jwt({'sub': 'u', 'exp': exp})}")

        assert auth.token_expires_at == datetime(2030, 1, 1, tzinfo=UTC)


class TestParseCallbackUrl:
    """Tests for callback fragment decoding."""

    def test_percent_encoded_values(self):
        """Test that fragment values are form-decoded."""
        response = parse_callback_url("https://app/callback#id_token=a%2Bb&scope=openid+profile")

        assert response.id_token == "a+b"
        assert response.scope == "openid profile"
        assert response.raw_response == {"id_token": "a+b", "scope": "openid profile"}

    def test_bare_id_token_key(self):
        """Test that an id_token without a value is rejected."""
        with pytest.raises(CallbackError):
            parse_callback_url("https://app/callback#id_token")

    def test_trailing_separator(self):
        """Test that empty segments in the fragment are skipped."""
        response = parse_callback_url("https://app/callback#id_token=ABC&state=xyz&")

        assert response.id_token == "ABC"
        assert response.state == "xyz"

    def test_valueless_key(self):
        """Test that a key without '=' decodes to an empty value."""
        response = parse_callback_url("https://app/callback#id_token=ABC&flag")

        assert response.id_token == "ABC"
        assert response.raw_response == {"id_token": "ABC", "flag": ""}

    def test_non_numeric_expires_in(self):
        """Test that an unusable expires_in is ignored."""
        response = TokenResponse.from_fragment("id_token=x&expires_in=soon")

        assert response.expires_in is None
