"""In-memory cookie jar for the login flow.

The jar is managed by hand instead of through the HTTP client so that every
redirect hop can be observed and the set of cookies sent is explicit.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from luminus_auth.core.exceptions import CookieError


def parse_set_cookie(header: str) -> tuple[str, str]:
    """Parse a single Set-Cookie header value into a ``(name, value)`` pair.

    Attributes after the first ``;`` (Path, Domain, HttpOnly, ...) are ignored.

    Raises:
        CookieError: If the header is not a ``name=value`` assignment.
    """
    assignment = header.split(";", 1)[0]
    name, sep, value = assignment.partition("=")
    name = name.strip()
    if not sep or not name:
        raise CookieError(f"Unable to parse cookie: {header!r}")
    return name, value.strip()


class CookieJar:
    """Mapping of cookie name to value with merge-on-receive semantics."""

    def __init__(self, cookies: dict[str, str] | None = None) -> None:
        self._cookies: dict[str, str] = dict(cookies or {})

    def merge(self, set_cookie_headers: Iterable[str]) -> None:
        """Upsert cookies from raw Set-Cookie headers, in arrival order.

        All headers are parsed before any is applied, so a malformed header
        leaves the jar unchanged.
        """
        parsed = [parse_set_cookie(header) for header in set_cookie_headers]
        for name, value in parsed:
            self._cookies[name] = value

    def to_header_value(self) -> str:
        """Render the jar as a ``Cookie`` request header value."""
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def retain_only(self, name: str) -> None:
        """Drop every cookie except ``name``.

        Raises:
            CookieError: If ``name`` is not in the jar.
        """
        if name not in self._cookies:
            raise CookieError(f"Session cookie {name!r} was never set by the provider")
        self._cookies = {name: self._cookies[name]}

    def get(self, name: str, default: str | None = None) -> str | None:
        return self._cookies.get(name, default)

    def clear(self) -> None:
        self._cookies.clear()

    def as_dict(self) -> dict[str, str]:
        return dict(self._cookies)

    def __getitem__(self, name: str) -> str:
        return self._cookies[name]

    def __contains__(self, name: object) -> bool:
        return name in self._cookies

    def __iter__(self) -> Iterator[str]:
        return iter(self._cookies)

    def __len__(self) -> int:
        return len(self._cookies)

    def __repr__(self) -> str:
        return f"CookieJar(names={sorted(self._cookies)})"
