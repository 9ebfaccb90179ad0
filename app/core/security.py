"""Security utilities for token generation and validation."""

import secrets


def generate_link_token() -> str:
    """Generate the shareable token for an event's public guest link.

    Returns a 64-character hex string with 256 bits of entropy.
    """
    return secrets.token_hex(32)
