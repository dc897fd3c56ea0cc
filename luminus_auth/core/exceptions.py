"""Error types raised by the authorization flow.

Every failure is terminal for the login or renew call that raised it.
Callers surface ``str(error)`` directly; it is a short human-readable reason.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all authorization failures."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class TransportError(AuthError):
    """Raised when an HTTP request fails below the application layer."""


class ProtocolError(AuthError):
    """Raised when the provider answers with an unexpected response shape."""


class ExpectedRedirectError(ProtocolError):
    """Raised when a redirect was required but no Location header was sent."""


class InvalidCredentialsError(ProtocolError):
    """Raised when the login form submission is not redirected."""


class DiscoveryError(ProtocolError):
    """Raised when the discovery document cannot be used."""


class ScrapeError(AuthError):
    """Raised when the login page cannot be scraped."""


class LoginFormNotFoundError(ScrapeError):
    """Raised when the embedded login form description is missing or invalid."""


class CallbackError(AuthError):
    """Raised when the final redirect does not carry a usable token fragment."""


class NotLoggedInError(AuthError):
    """Raised when renewal is attempted on a session that never logged in."""


class CookieError(AuthError):
    """Raised for malformed Set-Cookie headers or a missing session cookie."""
