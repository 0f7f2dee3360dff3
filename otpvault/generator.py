"""HOTP (RFC 4226) and TOTP (RFC 6238) code generation."""

from __future__ import annotations

import hmac
import logging
import struct
import time
from typing import NamedTuple

from otpvault import base32
from otpvault.errors import InvalidSecretEncoding
from otpvault.models import Algorithm, KeyRecord

logger = logging.getLogger(__name__)

INVALID_CHAR = "-"
U64_MASK = 0xFFFFFFFFFFFFFFFF


class Code(NamedTuple):
    value: str
    seconds_remaining: int | None = None


def hotp(secret: bytes, counter: int, algorithm: Algorithm = Algorithm.SHA1,
         digits: int = 6) -> str:
    """Generate HOTP code (RFC 4226)"""
    # Counter as 8-byte big-endian
    counter_bytes = struct.pack(">Q", counter & U64_MASK)

    mac = hmac.new(secret, counter_bytes, Algorithm(algorithm).digestmod).digest()

    # Dynamic truncation
    offset = mac[-1] & 0x0F
    truncated = struct.unpack(">I", mac[offset:offset + 4])[0] & 0x7FFFFFFF

    # Last `digits` characters of the zero-padded decimal
    return str(truncated).zfill(digits)[-digits:]


def time_step(now: int, period: int) -> int:
    return (int(now) & U64_MASK) // period


def seconds_remaining(now: int, period: int) -> int:
    """Seconds until the next TOTP rotation"""
    return period - (int(now) % period)


def invalid_code(digits: int) -> str:
    return INVALID_CHAR * digits


def _record_secret(record: KeyRecord) -> bytes | None:
    try:
        return base32.decode(record.secret)
    except InvalidSecretEncoding as e:
        logger.warning("Cannot generate code for %r: %s", record.label, e)
        return None


def totp(record: KeyRecord, now: int | None = None) -> Code:
    """Current TOTP code for ``record`` at unix time ``now``.

    Pure with respect to the record: the counter field is left alone, callers
    that want the countdown use ``Code.seconds_remaining``.
    """
    if now is None:
        now = int(time.time())
    remaining = seconds_remaining(now, record.period)
    secret = _record_secret(record)
    if secret is None:
        return Code(invalid_code(record.digits), remaining)
    value = hotp(secret, time_step(now, record.period), record.algorithm, record.digits)
    return Code(value, remaining)


def advance(record: KeyRecord) -> Code:
    """Consume the record's HOTP counter and move it forward by one.

    Not thread safe on its own; ``Vault.code`` serialises calls per record.
    An undecodable secret still consumes nothing.
    """
    secret = _record_secret(record)
    if secret is None:
        return Code(invalid_code(record.digits))
    value = hotp(secret, record.counter, record.algorithm, record.digits)
    record.counter += 1
    return Code(value)


def generate(record: KeyRecord, now: int | None = None) -> Code:
    if record.is_hotp:
        return advance(record)
    return totp(record, now)
