"""Tests for record serialization and export files."""

from __future__ import annotations

import json

import pytest

from otpvault import codec
from otpvault.errors import DecodeError
from otpvault.models import Algorithm, KeyRecord, OTPType


@pytest.fixture
def records():
    return [
        KeyRecord(type=OTPType.TOTP, secret="JBSWY3DPEHPK3PXP", label="GitHub (octocat)",
                  algorithm=Algorithm.SHA256, digits=8, period=60, counter=13, color=(10, 20, 30)),
        KeyRecord(type=OTPType.HOTP, secret="GEZDGNBVGY3TQOJQ", label="bank", counter=5),
    ]


def test_serialize_round_trip(records):
    restored = codec.deserialize(codec.serialize(records))
    assert restored == records
    assert [r.id for r in restored] == [r.id for r in records]
    assert restored[0].color == (10, 20, 30)
    assert restored[1].counter == 5


def test_blob_is_field_tagged(records):
    document = json.loads(codec.serialize(records))
    assert document["version"] == codec.FORMAT_VERSION
    first = document["records"][0]
    assert first["type"] == "totp"
    assert first["secret"] == "JBSWY3DPEHPK3PXP"
    assert first["algorithm"] == "SHA256"
    assert first["color"] == [10, 20, 30]


def test_totp_counter_is_not_persisted(records):
    document = json.loads(codec.serialize(records))
    assert document["records"][0]["counter"] == 0


def test_unknown_fields_are_ignored_and_missing_ones_defaulted():
    blob = json.dumps({
        "version": 1,
        "records": [{"type": "totp", "secret": "jbswy3dpehpk3pxp", "label": "x", "icon": "star"}],
    }).encode()
    (record,) = codec.deserialize(blob)
    assert record.secret == "JBSWY3DPEHPK3PXP"
    assert (record.digits, record.period, record.counter) == (6, 30, 0)
    assert record.algorithm is Algorithm.SHA1
    assert len(record.color) == 3


def test_legacy_bare_list():
    blob = json.dumps([{"type": "hotp", "secret": "JBSWY3DPEHPK3PXP", "label": "old", "counter": 3}]).encode()
    (record,) = codec.deserialize(blob)
    assert record.type is OTPType.HOTP
    assert record.counter == 3


def test_bad_color_is_replaced():
    blob = json.dumps([{"type": "totp", "secret": "JBSWY3DPEHPK3PXP", "label": "x", "color": "red"}]).encode()
    (record,) = codec.deserialize(blob)
    assert len(record.color) == 3


@pytest.mark.parametrize("blob", [
    b"\xff\xfe",
    b"not json",
    b'{"records": 5}',
    b'"a string"',
    b'[{"secret": "JBSWY3DPEHPK3PXP"}]',
    b'[{"type": "totp"}]',
    b'[{"type": "sms", "secret": "JBSWY3DPEHPK3PXP"}]',
    b'[{"type": "totp", "secret": "JBSWY3DPEHPK3PXP", "digits": "six"}]',
    b'[{"type": "totp", "secret": "JBSWY3DPEHPK3PXP", "digits": 0}]',
    b'[{"type": "totp", "secret": "JBSWY3DPEHPK3PXP", "algorithm": "MD5"}]',
    b'[5]',
])
def test_corrupt_blobs_raise_decode_error(blob):
    with pytest.raises(DecodeError):
        codec.deserialize(blob)


def test_empty_list():
    assert codec.deserialize(codec.serialize([])) == []


def test_export_file(records, tmp_path):
    path = codec.export_file(records, tmp_path / "backup" / "otp.json")
    assert path.exists()
    document = json.loads(path.read_text(encoding="utf-8"))
    assert [r["label"] for r in document["records"]] == ["GitHub (octocat)", "bank"]
    assert codec.import_file(path) == records
    assert not list(path.parent.glob("*.tmp"))


def test_import_missing_file(tmp_path):
    with pytest.raises(DecodeError):
        codec.import_file(tmp_path / "nope.json")
