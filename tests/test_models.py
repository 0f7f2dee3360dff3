"""Tests for the key record model."""

from __future__ import annotations

import pytest

from otpvault.errors import ParsingError
from otpvault.models import Algorithm, KeyRecord, OTPType
from otpvault.uri import build_uri, parse_otpauth_uri


def make(**overrides):
    fields = dict(type=OTPType.TOTP, secret="jbswy3dpehpk3pxp", label="GitHub (octocat)")
    fields.update(overrides)
    return KeyRecord(**fields)


def test_defaults():
    record = make()
    assert record.algorithm is Algorithm.SHA1
    assert record.digits == 6
    assert record.period == 30
    assert record.counter == 0
    assert len(record.color) == 3
    assert record.id


def test_secret_is_normalized_to_uppercase():
    assert make().secret == "JBSWY3DPEHPK3PXP"


def test_ids_are_unique():
    assert make().id != make().id


def test_equality_ignores_id_and_color():
    a = make(color=(1, 2, 3))
    b = make(color=(200, 100, 0))
    assert a.id != b.id
    assert a == b


def test_equality_ignores_totp_counter():
    assert make(counter=0) == make(counter=17)


def test_equality_includes_hotp_counter():
    assert make(type=OTPType.HOTP, counter=1) != make(type=OTPType.HOTP, counter=2)


@pytest.mark.parametrize("field,value", [
    ("label", "Other"),
    ("secret", "JBSWY3DPEHPK3PXQ"),
    ("algorithm", Algorithm.SHA256),
    ("digits", 8),
    ("period", 60),
    ("type", OTPType.HOTP),
])
def test_equality_covers_functional_fields(field, value):
    assert make() != make(**{field: value})


def test_copy_keeps_id():
    record = make()
    renamed = record.copy(label="Renamed")
    assert renamed.id == record.id
    assert renamed.label == "Renamed"
    assert record.label == "GitHub (octocat)"


@pytest.mark.parametrize("overrides", [
    {"secret": ""},
    {"secret": "   "},
    {"label": ""},
    {"digits": 0},
    {"period": 0},
    {"counter": -1},
])
def test_rejects_invalid_fields(overrides):
    with pytest.raises(ParsingError):
        make(**overrides)


def test_hotp_allows_zero_period():
    assert make(type=OTPType.HOTP, period=0).period == 0


def test_enum_parsing():
    assert OTPType.parse("TOTP") is OTPType.TOTP
    assert Algorithm.parse("sha512") is Algorithm.SHA512
    with pytest.raises(ParsingError, match="unsupported algorithm"):
        Algorithm.parse("MD5")
    with pytest.raises(ParsingError, match="unsupported OTP type"):
        OTPType.parse("motp")


def test_every_valid_record_survives_a_uri_round_trip():
    with pytest.raises(ParsingError, match="label"):
        KeyRecord(type=OTPType.TOTP, secret="JBSWY3DPEHPK3PXP", label="")
    record = make(label="/")
    assert parse_otpauth_uri(build_uri(record)) == record
