"""Identity token inspection.

Decodes the JWT returned by the provider so callers can read its claims and
decide when to renew. Signatures are not verified.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class DecodedToken:
    """Represents a decoded JWT token."""

    header: dict[str, Any] = field(default_factory=dict)
    payload: dict[str, Any] = field(default_factory=dict)
    signature: str = ""

    is_valid_format: bool = True
    error: str | None = None

    # Common claims
    issuer: str | None = None
    subject: str | None = None
    audience: str | list[str] | None = None
    expiration: datetime | None = None
    issued_at: datetime | None = None
    nonce: str | None = None

    @property
    def is_expired(self) -> bool:
        """Check if the token is expired."""
        if self.expiration is None:
            return False
        return datetime.now(UTC) > self.expiration

    @property
    def algorithm(self) -> str | None:
        return self.header.get("alg")


def decode_jwt(token: str) -> DecodedToken:
    """Decode a JWT token without verification.

    Args:
        token: JWT token string.

    Returns:
        DecodedToken with header and payload, or with ``error`` set if the
        token is not a well-formed JWT.
    """
    parts = token.split(".")
    if len(parts) != 3:
        return DecodedToken(
            is_valid_format=False,
            error=f"Invalid JWT format: expected 3 parts, got {len(parts)}",
        )

    try:
        header = _decode_base64url(parts[0])
        payload = _decode_base64url(parts[1])
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        return DecodedToken(is_valid_format=False, error=f"Failed to decode JWT: {e}")

    decoded = DecodedToken(
        header=header,
        payload=payload,
        signature=parts[2],
        issuer=payload.get("iss"),
        subject=payload.get("sub"),
        audience=payload.get("aud"),
        nonce=payload.get("nonce"),
    )

    try:
        if "exp" in payload:
            decoded.expiration = datetime.fromtimestamp(payload["exp"], tz=UTC)
        if "iat" in payload:
            decoded.issued_at = datetime.fromtimestamp(payload["iat"], tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError) as e:
        decoded.is_valid_format = False
        decoded.error = f"Invalid timestamp claim: {e}"

    return decoded


def _decode_base64url(data: str) -> dict[str, Any]:
    """Decode base64url-encoded JSON object."""
    padding = 4 - len(data) % 4
    if padding != 4:
        data += "=" * padding

    result = json.loads(base64.urlsafe_b64decode(data))
    if not isinstance(result, dict):
        raise ValueError("JWT segment is not a JSON object")
    return result


def format_token_claims(payload: dict[str, Any]) -> list[tuple[str, str]]:
    """Format token claims for display, rendering timestamps as ISO dates."""
    claims = []
    for key, value in payload.items():
        if key in ("exp", "iat", "nbf", "auth_time") and isinstance(value, (int, float)):
            dt = datetime.fromtimestamp(value, tz=UTC)
            formatted_value = f"{value} ({dt.isoformat()})"
        elif isinstance(value, dict):
            formatted_value = json.dumps(value)
        elif isinstance(value, list):
            formatted_value = ", ".join(str(v) for v in value)
        else:
            formatted_value = str(value)
        claims.append((key, formatted_value))
    return claims
