"""OIDC discovery and authorization request construction."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from urllib.parse import urlencode, urlsplit, urlunsplit

from luminus_auth.core.config import ProviderSettings
from luminus_auth.core.exceptions import DiscoveryError
from luminus_auth.core.oidc.http import HTTPExchanger
from luminus_auth.core.oidc.tokens import RandomBytes, generate_random_hex

logger = logging.getLogger(__name__)

# state and nonce are 16 random bytes each, i.e. 32 hex characters
STATE_SIZE = 16


@dataclass
class AuthorizationRequest:
    """An authorization endpoint URL and the per-request values it carries."""

    url: str
    state: str
    nonce: str


def fetch_authorization_endpoint(exchanger: HTTPExchanger, settings: ProviderSettings) -> str:
    """Fetch the provider's discovery document and return its authorization endpoint.

    The request carries no cookies and leaves the session's jar untouched.

    Raises:
        DiscoveryError: If the document is unavailable, not JSON, or lacks the field.
    """
    discovery_url = settings.discovery_url
    logger.debug(f"Fetching OIDC discovery from {discovery_url}")

    response = exchanger.get(discovery_url, use_cookies=False)
    if response.status_code != 200:
        raise DiscoveryError(f"HTTP {response.status_code} fetching OIDC config from {discovery_url}")

    try:
        document = response.json()
    except ValueError as e:
        raise DiscoveryError(f"Invalid JSON in OIDC configuration: {e}") from e

    endpoint = document.get("authorization_endpoint") if isinstance(document, dict) else None
    if not isinstance(endpoint, str) or not endpoint:
        raise DiscoveryError("OIDC configuration has no authorization_endpoint")

    parts = urlsplit(endpoint)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise DiscoveryError(f"Unable to parse discovery url: {endpoint!r}")
    return endpoint


def build_authorization_url(
    endpoint: str,
    settings: ProviderSettings,
    random_bytes: RandomBytes = secrets.token_bytes,
) -> AuthorizationRequest:
    """Append the implicit-flow parameters to ``endpoint``.

    Any query the endpoint already carries is preserved.
    """
    state = generate_random_hex(STATE_SIZE, random_bytes)
    nonce = generate_random_hex(STATE_SIZE, random_bytes)

    params = {
        "state": state,
        "nonce": nonce,
        "client_id": settings.client_id,
        "scope": settings.scope,
        "response_type": settings.response_type,
        "redirect_uri": settings.redirect_uri,
    }

    scheme, netloc, path, query, fragment = urlsplit(endpoint)
    encoded = urlencode(params)
    query = f"{query}&{encoded}" if query else encoded
    url = urlunsplit((scheme, netloc, path, query, fragment))

    return AuthorizationRequest(url=url, state=state, nonce=nonce)


def create_authorization_request(
    exchanger: HTTPExchanger,
    settings: ProviderSettings,
    random_bytes: RandomBytes = secrets.token_bytes,
) -> AuthorizationRequest:
    """Discover the authorization endpoint and build a fresh request for it."""
    endpoint = fetch_authorization_endpoint(exchanger, settings)
    return build_authorization_url(endpoint, settings, random_bytes)
