"""HOTP/TOTP key vault: otpauth URI parsing, code generation and storage."""

__version__ = "0.3.0"

from otpvault.errors import (  # noqa: E402
    DecodeError,
    InvalidSecretEncoding,
    MalformedInput,
    OTPError,
    ParsingError,
    StoreError,
)
from otpvault.generator import INVALID_CHAR, Code, generate, hotp, totp  # noqa: E402
from otpvault.models import Algorithm, KeyRecord, OTPType  # noqa: E402
from otpvault.uri import build_uri, parse_otpauth_uri  # noqa: E402
from otpvault.migration import build_migration_uri, parse_migration_uri  # noqa: E402
from otpvault.vault import Vault, parse_any_uri  # noqa: E402

__all__ = [
    "Algorithm",
    "Code",
    "DecodeError",
    "INVALID_CHAR",
    "InvalidSecretEncoding",
    "KeyRecord",
    "MalformedInput",
    "OTPError",
    "OTPType",
    "ParsingError",
    "StoreError",
    "Vault",
    "build_migration_uri",
    "build_uri",
    "generate",
    "hotp",
    "parse_any_uri",
    "parse_migration_uri",
    "parse_otpauth_uri",
    "totp",
]
