"""Random identifiers for production deployments."""

import math
import secrets


def unique_id(num_bytes: int = 32) -> str:
    """Generate a URL-safe random identifier from num_bytes of entropy."""
    if num_bytes <= 0:
        raise ValueError("num_bytes must be positive")
    return secrets.token_urlsafe(num_bytes)


def unique_id_length(num_bytes: int) -> int:
    """Length of a unique_id() built from num_bytes (unpadded base64)."""
    return math.ceil(num_bytes * 4 / 3)
