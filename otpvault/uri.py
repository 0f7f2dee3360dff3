"""Parse and build ``otpauth://`` key URIs.

    otpauth://totp/ACME%20Co:john@example.com?secret=HXDMVJECJJWSRB3HWIZR4IFUGFTMXBOZ&issuer=ACME%20Co

The host picks HOTP or TOTP, ``secret`` is required, and ``issuer``,
``algorithm``, ``digits``, ``period`` and ``counter`` are optional.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlsplit

from otpvault.errors import MalformedInput, ParsingError
from otpvault.models import (
    DEFAULT_COUNTER,
    DEFAULT_DIGITS,
    DEFAULT_PERIOD,
    Algorithm,
    KeyRecord,
    OTPType,
)

logger = logging.getLogger(__name__)

SCHEME = "otpauth"

# "<issuer> (<account>)", the label shape produced when both are present
COMPOSED_LABEL = re.compile(r"^(?P<issuer>.+?) \((?P<account>.+)\)$", re.DOTALL)


def compose_label(issuer: str, account: str) -> str:
    """Combine issuer and path into a display label."""
    account = account.lstrip("/")
    if issuer and account:
        return f"{issuer} ({account})"
    return issuer or account


def split_label(label: str) -> tuple[str, str]:
    """Inverse of ``compose_label``: returns ``(issuer, account)``."""
    match = COMPOSED_LABEL.match(label)
    if match and not match.group("account").startswith("/"):
        return match.group("issuer"), match.group("account")
    return "", label


def _int_param(params: dict, name: str, default: int) -> int:
    value = params.get(name)
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        logger.debug("Ignoring non-numeric %s=%r, using %d", name, value, default)
        return default


def parse_otpauth_uri(uri: str) -> KeyRecord:
    """Parse a standard otpauth:// URI into a new KeyRecord.

    Raises MalformedInput when there is no query or no secret at all, and
    ParsingError for anything present but unusable.
    """
    parsed = urlsplit(uri.strip())
    if parsed.scheme.lower() != SCHEME:
        raise ParsingError(f"not an otpauth URI: scheme {parsed.scheme!r}")

    otp_type = OTPType.parse(parsed.netloc)

    pairs = parse_qsl(parsed.query, keep_blank_values=True)
    if not pairs:
        raise MalformedInput("otpauth URI has no parameters")
    # First occurrence wins, keys are case-insensitive
    params: dict[str, str] = {}
    for key, value in pairs:
        params.setdefault(key.lower(), value)

    secret = params.get("secret", "").strip()
    if not secret:
        raise MalformedInput("otpauth URI has no secret")

    label = compose_label(params.get("issuer", ""), unquote(parsed.path))
    if not label:
        raise ParsingError("otpauth URI has neither an issuer nor a label")

    algorithm = Algorithm.SHA1
    if params.get("algorithm"):
        algorithm = Algorithm.parse(params["algorithm"])

    counter = DEFAULT_COUNTER
    if otp_type is OTPType.HOTP:
        counter = _int_param(params, "counter", DEFAULT_COUNTER)

    record = KeyRecord(
        type=otp_type,
        secret=secret,
        label=label,
        algorithm=algorithm,
        digits=_int_param(params, "digits", DEFAULT_DIGITS),
        period=_int_param(params, "period", DEFAULT_PERIOD),
        counter=counter,
    )
    logger.debug("Parsed %s key %r (%s, %d digits)", otp_type.value, label,
                 algorithm.value, record.digits)
    return record


def build_uri(record: KeyRecord) -> str:
    """Build the canonical otpauth:// URI for ``record``.

    ``parse_otpauth_uri(build_uri(r)) == r`` holds for every valid record.
    """
    issuer, account = split_label(record.label)
    if not issuer and account.startswith("/"):
        # A leading slash would be eaten by the path, carry it as issuer
        issuer, account = account, ""

    params = [("secret", record.secret)]
    if issuer:
        params.append(("issuer", issuer))
    params += [
        ("algorithm", record.algorithm.value),
        ("digits", str(record.digits)),
        ("period", str(record.period)),
    ]
    if record.is_hotp:
        params.append(("counter", str(record.counter)))

    path = quote(account, safe="")
    return f"{SCHEME}://{record.type.value}/{path}?{urlencode(params, quote_via=quote)}"
