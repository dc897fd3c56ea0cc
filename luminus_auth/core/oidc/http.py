"""HTTP exchange layer.

Requests are sent one at a time with redirects disabled so that the flow can
read every ``Location`` header itself. Cookies come from, and go back into, an
explicit ``CookieJar`` rather than the HTTP client's own jar.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urljoin, urlsplit

import httpx

from luminus_auth.core.exceptions import ExpectedRedirectError, ProtocolError, TransportError
from luminus_auth.core.logging import LoggingClient, ProtocolLogger, get_protocol_logger
from luminus_auth.core.oidc.cookies import CookieJar

logger = logging.getLogger(__name__)


class HTTPExchanger:
    """Sends GET/POST requests carrying a cookie jar and folds Set-Cookie back into it."""

    def __init__(
        self,
        cookies: CookieJar | None = None,
        protocol_logger: ProtocolLogger | None = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the exchanger.

        Args:
            cookies: Jar attached to and updated by every exchange.
            protocol_logger: Optional protocol logger for HTTP traffic capture.
            timeout: Per-request timeout in seconds.
            verify_ssl: Whether to verify TLS certificates.
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
        """
        self.cookies = cookies if cookies is not None else CookieJar()
        self._protocol_logger = protocol_logger or get_protocol_logger()
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._transport = transport
        self._http_client: LoggingClient | None = None

    @property
    def http_client(self) -> LoggingClient:
        """Get or create the HTTP client with logging."""
        if self._http_client is None:
            kwargs: dict[str, Any] = {"timeout": self._timeout, "verify": self._verify_ssl}
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._http_client = LoggingClient(protocol_logger=self._protocol_logger, **kwargs)
        return self._http_client

    @property
    def protocol_logger(self) -> ProtocolLogger:
        return self._protocol_logger

    def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def __enter__(self) -> HTTPExchanger:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get(self, url: str, use_cookies: bool = True) -> httpx.Response:
        """GET ``url`` without following redirects.

        Args:
            url: Absolute URL to fetch.
            use_cookies: If False the jar is neither sent nor updated.
        """
        return self._send("GET", url, use_cookies=use_cookies)

    def post(self, url: str, form: dict[str, str]) -> httpx.Response:
        """POST ``form`` as application/x-www-form-urlencoded without following redirects."""
        return self._send("POST", url, data=form)

    def _send(self, method: str, url: str, use_cookies: bool = True, **kwargs: Any) -> httpx.Response:
        headers: dict[str, str] = {}
        if use_cookies and len(self.cookies):
            headers["Cookie"] = self.cookies.to_header_value()

        try:
            response = self.http_client.request(method, url, headers=headers, **kwargs)
        except httpx.RequestError as e:
            raise TransportError(f"Failed HTTP request: {method} {url}: {e}") from e
        finally:
            # The client jar is never the source of truth
            if self._http_client is not None:
                self._http_client.cookies.clear()

        if use_cookies:
            set_cookies = response.headers.get_list("set-cookie")
            if set_cookies:
                self.cookies.merge(set_cookies)
                logger.debug(f"Received cookies {[h.split('=', 1)[0] for h in set_cookies]} from {url}")

        return response


def extract_redirect_location(response: httpx.Response) -> str:
    """Return the absolute redirect target announced by ``response``.

    Relative Location values resolve against the URL that was requested.

    Raises:
        ExpectedRedirectError: If the response has no Location header.
        ProtocolError: If the Location value is not a usable URL.
    """
    location = response.headers.get("location")
    if location is None:
        raise ExpectedRedirectError("Invalid response from server, expected redirection")

    base = str(response.request.url) if _has_request(response) else ""
    try:
        url = urljoin(base, location.strip())
        parts = urlsplit(url)
    except ValueError as e:
        raise ProtocolError(f"Unable to parse the url of location: {location!r}") from e

    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ProtocolError(f"Unable to parse the url of location: {location!r}")
    return url


def _has_request(response: httpx.Response) -> bool:
    try:
        response.request
    except RuntimeError:
        return False
    return True
