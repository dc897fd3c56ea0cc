"""Headless OIDC implicit-flow login against the LumiNUS identity provider."""

from luminus_auth.core.oidc.cookies import CookieJar, parse_set_cookie
from luminus_auth.core.oidc.discovery import (
    AuthorizationRequest,
    build_authorization_url,
    create_authorization_request,
    fetch_authorization_endpoint,
)
from luminus_auth.core.oidc.flows import (
    Authorization,
    AuthorizationState,
    TokenResponse,
    parse_callback_url,
)
from luminus_auth.core.oidc.http import HTTPExchanger, extract_redirect_location
from luminus_auth.core.oidc.scraper import (
    AntiForgeryToken,
    LoginPageInfo,
    fetch_login_page_info,
    parse_login_page,
)
from luminus_auth.core.oidc.tokens import RandomBytes, generate_random_hex
from luminus_auth.core.oidc.utils import DecodedToken, decode_jwt, format_token_claims

__all__ = [
    # Session
    "Authorization",
    "AuthorizationState",
    "TokenResponse",
    "parse_callback_url",
    # Cookies
    "CookieJar",
    "parse_set_cookie",
    # HTTP
    "HTTPExchanger",
    "extract_redirect_location",
    # Discovery
    "AuthorizationRequest",
    "build_authorization_url",
    "create_authorization_request",
    "fetch_authorization_endpoint",
    # Login page
    "AntiForgeryToken",
    "LoginPageInfo",
    "fetch_login_page_info",
    "parse_login_page",
    # Random values
    "RandomBytes",
    "generate_random_hex",
    # Token inspection
    "DecodedToken",
    "decode_jwt",
    "format_token_claims",
]
