"""Shared fixtures."""

from __future__ import annotations

import base64

import pytest

from otpvault.models import KeyRecord, OTPType

# RFC 4226 Appendix D secret
RFC_SECRET = base64.b32encode(b"12345678901234567890").decode()


@pytest.fixture
def totp_record():
    return KeyRecord(type=OTPType.TOTP, secret=RFC_SECRET, label="ACME Co (john@example.com)")


@pytest.fixture
def hotp_record():
    return KeyRecord(type=OTPType.HOTP, secret=RFC_SECRET, label="Counter", counter=0)


@pytest.fixture
def isolated_env(monkeypatch, tmp_path):
    """Point every configured location at tmp_path."""
    monkeypatch.setenv("OTPVAULT_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(tmp_path / "run"))
    monkeypatch.delenv("OTPVAULT_STORE", raising=False)
    monkeypatch.delenv("OTPVAULT_PASSWORD", raising=False)
    (tmp_path / "run").mkdir()
    return tmp_path
