"""Tests for Base32 secret decoding."""

from __future__ import annotations

import pytest

from otpvault import base32
from otpvault.errors import InvalidSecretEncoding, OTPError


@pytest.mark.parametrize("text,expected", [
    ("MY", b"f"),         # remainder 2 -> 6 pad chars
    ("MZXQ", b"fo"),      # remainder 4 -> 4
    ("MZXW6", b"foo"),    # remainder 5 -> 3
    ("MZXW6YQ", b"foob"), # remainder 7 -> 1
    ("MZXW6YTB", b"fooba"),
])
def test_decode_pads_missing_padding(text, expected):
    assert base32.decode(text) == expected


def test_decode_is_case_insensitive():
    assert base32.decode("mzxw6ytboi") == b"foobar"


def test_decode_accepts_existing_padding():
    assert base32.decode("MZXW6===") == b"foo"


def test_decode_ignores_spaces():
    assert base32.decode("MZXW 6YTB OI") == b"foobar"


def test_pad_table():
    assert base32.pad("AB") == "AB======"
    assert base32.pad("ABCD") == "ABCD===="
    assert base32.pad("ABCDE") == "ABCDE==="
    assert base32.pad("ABCDEFG") == "ABCDEFG="
    assert base32.pad("ABCDEFGH") == "ABCDEFGH"
    # Impossible lengths get no padding and fail to decode
    assert base32.pad("ABC") == "ABC"


@pytest.mark.parametrize("text", ["MZXW6!!!", "MZXW1890", "M", "MZX", "MZXW6Y"])
def test_decode_rejects_bad_input(text):
    with pytest.raises(InvalidSecretEncoding):
        base32.decode(text)


def test_invalid_encoding_is_recoverable_value_error():
    with pytest.raises(ValueError):
        base32.decode("!!!!")
    assert issubclass(InvalidSecretEncoding, OTPError)


def test_encode_strips_padding():
    assert base32.encode(b"foo") == "MZXW6"
    assert base32.decode(base32.encode(b"\x00\xff\x10")) == b"\x00\xff\x10"
