"""Base32 secrets as found in otpauth URIs (RFC 4648, padding optional)."""

import base64
import binascii

from otpvault.errors import InvalidSecretEncoding

# Characters past the last full 8-char block -> '=' needed to complete it
PADDING = {2: 6, 4: 4, 5: 3, 7: 1}


def normalize(text: str) -> str:
    """Uppercase a secret and drop the spaces people paste in."""
    return text.replace(" ", "").upper()


def pad(text: str) -> str:
    return text + "=" * PADDING.get(len(text) % 8, 0)


def decode(text: str) -> bytes:
    """Decode a Base32 secret, tolerating lowercase and missing padding."""
    secret = pad(normalize(text))
    try:
        return base64.b32decode(secret)
    except (binascii.Error, ValueError) as e:
        raise InvalidSecretEncoding(f"Invalid secret key format: {e}") from e


def encode(raw: bytes) -> str:
    """Encode raw key bytes the way authenticator apps show them (no padding)."""
    return base64.b32encode(raw).decode("ascii").rstrip("=")
