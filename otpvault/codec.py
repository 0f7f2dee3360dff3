"""Serialize key records for the secret store and for export files.

Records are written as JSON objects keyed by field name, so fields can be
added later without breaking blobs written by older versions:

    {"version": 1, "records": [{"id": "...", "type": "totp", "secret": "...", ...}]}
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from otpvault.errors import DecodeError, OTPError
from otpvault.models import (
    DEFAULT_COUNTER,
    DEFAULT_DIGITS,
    DEFAULT_PERIOD,
    Algorithm,
    KeyRecord,
    OTPType,
    random_color,
)
from otpvault.store import atomic_write

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def record_to_dict(record: KeyRecord) -> dict:
    return {
        "id": record.id,
        "type": record.type.value,
        "secret": record.secret,
        "label": record.label,
        "algorithm": record.algorithm.value,
        "digits": record.digits,
        "period": record.period,
        # TOTP counters are only a countdown, never persisted
        "counter": record.counter if record.is_hotp else 0,
        "color": list(record.color),
    }


def _int_field(entry: dict, name: str, default: int) -> int:
    value = entry.get(name, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"record field {name!r} must be an integer, got {value!r}")
    return value


def _color(entry: dict) -> tuple[int, int, int]:
    value = entry.get("color")
    if (isinstance(value, (list, tuple)) and len(value) == 3
            and all(isinstance(c, (int, float)) and not isinstance(c, bool) for c in value)):
        return tuple(value)
    # Cosmetic only, a bad colour is not worth failing the load
    return random_color()


def record_from_dict(entry: dict) -> KeyRecord:
    if not isinstance(entry, dict):
        raise DecodeError(f"record must be an object, got {type(entry).__name__}")
    for name in ("type", "secret"):
        if not isinstance(entry.get(name), str):
            raise DecodeError(f"record is missing {name!r}")

    kwargs = {}
    if isinstance(entry.get("id"), str) and entry["id"]:
        kwargs["id"] = entry["id"]
    try:
        return KeyRecord(
            type=OTPType.parse(entry["type"]),
            secret=entry["secret"],
            label=str(entry.get("label", "")),
            algorithm=Algorithm.parse(str(entry.get("algorithm", Algorithm.SHA1.value))),
            digits=_int_field(entry, "digits", DEFAULT_DIGITS),
            period=_int_field(entry, "period", DEFAULT_PERIOD),
            counter=_int_field(entry, "counter", DEFAULT_COUNTER),
            color=_color(entry),
            **kwargs,
        )
    except DecodeError:
        raise
    except OTPError as e:
        raise DecodeError(f"invalid record: {e}") from e


def dump(records: list[KeyRecord]) -> dict:
    return {"version": FORMAT_VERSION, "records": [record_to_dict(r) for r in records]}


def load(document) -> list[KeyRecord]:
    """Build records from a decoded JSON document.

    Accepts the versioned object and the bare list written by early releases.
    """
    if isinstance(document, list):
        entries = document
    elif isinstance(document, dict) and isinstance(document.get("records"), list):
        version = document.get("version", FORMAT_VERSION)
        if isinstance(version, int) and version > FORMAT_VERSION:
            logger.warning("Reading records written by a newer format (v%s)", version)
        entries = document["records"]
    else:
        raise DecodeError("not a key record document")
    return [record_from_dict(entry) for entry in entries]


def serialize(records: list[KeyRecord]) -> bytes:
    """Encode records as the opaque blob kept in the secret store."""
    return json.dumps(dump(records), separators=(",", ":")).encode("utf-8")


def deserialize(blob: bytes) -> list[KeyRecord]:
    try:
        document = json.loads(blob.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise DecodeError(f"Corrupted record data: {e}") from e
    return load(document)


def export_file(records: list[KeyRecord], path) -> Path:
    """Write a portable JSON export of ``records`` to ``path``, atomically."""
    path = Path(path)
    text = json.dumps(dump(records), indent=2, ensure_ascii=False) + "\n"
    atomic_write(path, text.encode("utf-8"))
    logger.debug("Exported %d records to %s", len(records), path)
    return path


def import_file(path) -> list[KeyRecord]:
    try:
        blob = Path(path).read_bytes()
    except OSError as e:
        raise DecodeError(f"Could not read export file {path}: {e}") from e
    return deserialize(blob)
