"""Google Authenticator style batch export: ``otpauth-migration://offline?data=...``.

``data`` is base64 of a protobuf ``MigrationPayload``; every field 1 entry is
an ``OtpParameters`` message:

    1 secret (bytes)   2 name (string)     3 issuer (string)
    4 algorithm (enum) 5 digits (enum)     6 type (enum)     7 counter (int64)

Each entry is turned back into an otpauth:// URI and run through the regular
URI parser so both import paths build labels and defaults the same way.
"""

from __future__ import annotations

import base64
import binascii
import logging
from urllib.parse import quote, unquote, urlencode, urlsplit

from otpvault import base32
from otpvault.errors import MalformedInput, ParsingError
from otpvault.models import DEFAULT_PERIOD, Algorithm, KeyRecord, OTPType
from otpvault.uri import parse_otpauth_uri, split_label

logger = logging.getLogger(__name__)

SCHEME = "otpauth-migration"

WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH = 2
WIRE_FIXED32 = 5

ALGORITHMS = {0: Algorithm.SHA1, 1: Algorithm.SHA1, 2: Algorithm.SHA256, 3: Algorithm.SHA512}
DIGITS = {0: 6, 1: 6, 2: 8}
TYPES = {0: OTPType.TOTP, 1: OTPType.HOTP, 2: OTPType.TOTP}


# ==================== Wire format ====================

def parse_protobuf_varint(data: bytes, offset: int) -> tuple[int, int]:
    """Parse a protobuf varint and return (value, new_offset)"""
    result = 0
    shift = 0
    while True:
        if offset >= len(data):
            raise ParsingError("truncated varint")
        byte = data[offset]
        result |= (byte & 0x7F) << shift
        offset += 1
        if not (byte & 0x80):
            return result, offset
        shift += 7
        if shift > 63:
            raise ParsingError("varint too long")


def iter_fields(data: bytes):
    """Yield (field_number, wire_type, value) for every field in a message.

    Length-delimited values are returned as bytes, varints as int. Fixed width
    fields are skipped over and yielded as raw bytes.
    """
    offset = 0
    while offset < len(data):
        tag, offset = parse_protobuf_varint(data, offset)
        field_number = tag >> 3
        wire_type = tag & 0x07
        if field_number == 0:
            raise ParsingError("invalid field number 0")

        if wire_type == WIRE_VARINT:
            value, offset = parse_protobuf_varint(data, offset)
        elif wire_type == WIRE_LENGTH:
            length, offset = parse_protobuf_varint(data, offset)
            if offset + length > len(data):
                raise ParsingError(f"field {field_number} runs past end of message")
            value = data[offset:offset + length]
            offset += length
        elif wire_type in (WIRE_FIXED64, WIRE_FIXED32):
            size = 8 if wire_type == WIRE_FIXED64 else 4
            if offset + size > len(data):
                raise ParsingError(f"field {field_number} runs past end of message")
            value = data[offset:offset + size]
            offset += size
        else:
            raise ParsingError(f"unsupported wire type {wire_type}")
        yield field_number, wire_type, value


def encode_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _varint_field(number: int, value: int) -> bytes:
    return encode_varint(number << 3 | WIRE_VARINT) + encode_varint(value)


def _bytes_field(number: int, value: bytes) -> bytes:
    return encode_varint(number << 3 | WIRE_LENGTH) + encode_varint(len(value)) + value


# ==================== Decoding ====================

def _text(value: bytes, what: str) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        raise ParsingError(f"{what} is not valid UTF-8") from None


def _enum(table: dict, value: int, what: str):
    try:
        return table[value]
    except KeyError:
        raise ParsingError(f"unsupported {what} value {value}") from None


def parse_otp_entry(data: bytes) -> str:
    """Parse a single OtpParameters entry and return its otpauth:// URI."""
    entry = {
        "name": "",
        "issuer": "",
        "algorithm": Algorithm.SHA1,
        "digits": 6,
        "type": OTPType.TOTP,
        "counter": 0,
    }

    for field_number, wire_type, value in iter_fields(data):
        if wire_type == WIRE_LENGTH:
            if field_number == 1:
                entry["secret"] = base32.encode(value)
            elif field_number == 2:
                entry["name"] = _text(value, "name")
            elif field_number == 3:
                entry["issuer"] = _text(value, "issuer")
        elif wire_type == WIRE_VARINT:
            if field_number == 4:
                entry["algorithm"] = _enum(ALGORITHMS, value, "algorithm")
            elif field_number == 5:
                entry["digits"] = _enum(DIGITS, value, "digit count")
            elif field_number == 6:
                entry["type"] = _enum(TYPES, value, "OTP type")
            elif field_number == 7:
                entry["counter"] = value

    if not entry.get("secret"):
        raise MalformedInput("migration entry has no secret")

    params = [("secret", entry["secret"])]
    if entry["issuer"]:
        params.append(("issuer", entry["issuer"]))
    params += [
        ("algorithm", entry["algorithm"].value),
        ("digits", str(entry["digits"])),
        ("period", str(DEFAULT_PERIOD)),
    ]
    if entry["type"] is OTPType.HOTP:
        params.append(("counter", str(entry["counter"])))

    name = quote(entry["name"], safe="")
    return f"otpauth://{entry['type'].value}/{name}?{urlencode(params, quote_via=quote)}"


def parse_migration_payload(data: bytes) -> list[str]:
    """Parse a MigrationPayload message into one otpauth:// URI per entry.

    Any bad entry fails the whole payload.
    """
    uris = []
    for field_number, wire_type, value in iter_fields(data):
        if field_number == 1 and wire_type == WIRE_LENGTH:
            uris.append(parse_otp_entry(value))
        elif field_number == 1:
            raise ParsingError("otp_parameters is not a message")
    return uris


def extract_payload(uri: str) -> bytes:
    """Return the decoded ``data`` bytes of a migration URI."""
    parsed = urlsplit(uri.strip())
    if parsed.scheme.lower() != SCHEME:
        raise ParsingError(f"not a migration URI: scheme {parsed.scheme!r}")

    # parse_qs would turn a literal '+' of the base64 into a space
    data = None
    for pair in parsed.query.split("&"):
        key, _, value = pair.partition("=")
        if key == "data":
            data = unquote(value).strip()
            break
    if not data:
        raise MalformedInput("No data parameter found in migration URI")

    data += "=" * (-len(data) % 4)
    try:
        if "-" in data or "_" in data:
            return base64.urlsafe_b64decode(data)
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ParsingError(f"Error decoding data: {e}") from e


def parse_migration_uri(uri: str) -> list[KeyRecord]:
    """Decode every key in an otpauth-migration:// URI, all or nothing."""
    uris = parse_migration_payload(extract_payload(uri))
    records = [parse_otpauth_uri(item) for item in uris]
    logger.debug("Decoded %d keys from migration payload", len(records))
    return records


# ==================== Encoding ====================

def encode_otp_entry(record: KeyRecord) -> bytes:
    if record.digits not in (6, 8):
        raise ParsingError(f"migration format cannot carry {record.digits} digits")
    if record.period != DEFAULT_PERIOD:
        raise ParsingError(f"migration format cannot carry a {record.period}s period")

    issuer, name = split_label(record.label)
    algorithm = {a: n for n, a in ALGORITHMS.items() if n}[record.algorithm]
    otp_type = 1 if record.is_hotp else 2
    entry = (
        _bytes_field(1, base32.decode(record.secret))
        + _bytes_field(2, name.encode("utf-8"))
        + _bytes_field(3, issuer.encode("utf-8"))
        + _varint_field(4, algorithm)
        + _varint_field(5, 1 if record.digits == 6 else 2)
        + _varint_field(6, otp_type)
    )
    if record.is_hotp:
        entry += _varint_field(7, record.counter)
    return entry


def build_migration_uri(records: list[KeyRecord]) -> str:
    """Encode ``records`` as a single-batch otpauth-migration:// URI."""
    payload = b"".join(_bytes_field(1, encode_otp_entry(r)) for r in records)
    payload += _varint_field(2, 1) + _varint_field(3, 1) + _varint_field(4, 0)
    data = base64.b64encode(payload).decode("ascii")
    return f"{SCHEME}://offline?data={quote(data, safe='')}"
