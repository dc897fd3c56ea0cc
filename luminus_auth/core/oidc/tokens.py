"""Random values for the OIDC ``state`` and ``nonce`` parameters."""

from __future__ import annotations

import secrets
from collections.abc import Callable

RandomBytes = Callable[[int], bytes]


def generate_random_hex(size: int, random_bytes: RandomBytes = secrets.token_bytes) -> str:
    """Generate ``size`` random bytes rendered as lowercase hex.

    Args:
        size: Number of random bytes; the result has ``2 * size`` characters.
        random_bytes: Byte source, replaceable for deterministic tests.

    Returns:
        Lowercase hexadecimal string.
    """
    if size < 0:
        raise ValueError(f"size must be non-negative, got {size}")
    data = random_bytes(size)
    if len(data) != size:
        raise ValueError(f"Random byte source returned {len(data)} bytes, expected {size}")
    return data.hex()
