"""Tests for the secret stores."""

from __future__ import annotations

import json
import os

import keyring
import pytest
from keyring.errors import KeyringError

from otpvault import store as store_module
from otpvault.errors import DecodeError, StoreError
from otpvault.store import (
    FileSecretStore,
    KeyringSecretStore,
    MemorySecretStore,
    atomic_write,
)


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    monkeypatch.setattr(store_module, "KDF_ITERATIONS", 1000)


def test_memory_store():
    store = MemorySecretStore()
    assert store.get("k") is None
    store.set("k", b"value")
    assert store.get("k") == b"value"


def test_atomic_write_replaces_file(tmp_path):
    path = tmp_path / "nested" / "file.bin"
    atomic_write(path, b"one")
    atomic_write(path, b"two")
    assert path.read_bytes() == b"two"
    assert oct(path.stat().st_mode & 0o777) == oct(0o600)
    assert [p.name for p in path.parent.iterdir()] == ["file.bin"]


def test_atomic_write_keeps_old_file_on_failure(tmp_path, monkeypatch):
    path = tmp_path / "file.bin"
    atomic_write(path, b"good")

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(store_module.os, "replace", broken_replace)
    with pytest.raises(OSError):
        atomic_write(path, b"bad")
    assert path.read_bytes() == b"good"
    assert [p.name for p in tmp_path.iterdir()] == ["file.bin"]


def test_file_store_missing_file_is_empty(tmp_path):
    assert FileSecretStore(tmp_path / "vault.json").get("k") is None


def test_file_store_plaintext(tmp_path):
    path = tmp_path / "vault.json"
    store = FileSecretStore(path)
    store.set("k", b"\x00blob")
    assert store.get("k") == b"\x00blob"
    assert store.get("other") is None
    stored = json.loads(path.read_text())
    assert stored["encrypted"] is False
    assert not store.is_encrypted()


def test_file_store_encrypted(tmp_path):
    path = tmp_path / "vault.json"
    FileSecretStore(path, password="hunter2").set("k", b"secret blob")

    stored = json.loads(path.read_text())
    assert stored["encrypted"] is True
    assert "secret blob" not in path.read_text()

    assert FileSecretStore(path, password="hunter2").get("k") == b"secret blob"
    assert FileSecretStore(path).is_encrypted()


def test_file_store_wrong_password(tmp_path):
    path = tmp_path / "vault.json"
    FileSecretStore(path, password="right").set("k", b"blob")
    with pytest.raises(StoreError, match="Invalid password"):
        FileSecretStore(path, password="wrong").get("k")
    with pytest.raises(StoreError):
        FileSecretStore(path, password="wrong").set("k2", b"blob")
    with pytest.raises(StoreError, match="password is required"):
        FileSecretStore(path).get("k")


def test_file_store_keeps_other_keys(tmp_path):
    store = FileSecretStore(tmp_path / "vault.json", password="pw")
    store.set("a", b"1")
    store.set("b", b"2")
    store.set("a", b"3")
    assert (store.get("a"), store.get("b")) == (b"3", b"2")


def test_file_store_corrupt_file(tmp_path):
    path = tmp_path / "vault.json"
    path.write_text("{not json")
    with pytest.raises(DecodeError):
        FileSecretStore(path).get("k")
    path.write_text(json.dumps({"encrypted": False, "entries": {"k": "***"}}))
    with pytest.raises(DecodeError):
        FileSecretStore(path).get("k")


def test_rekey(tmp_path):
    path = tmp_path / "vault.json"
    FileSecretStore(path).set("k", b"plain")

    store = FileSecretStore(path)
    store.rekey("first")
    assert FileSecretStore(path, password="first").get("k") == b"plain"

    store = FileSecretStore(path, password="first")
    store.rekey("second")
    assert FileSecretStore(path, password="second").get("k") == b"plain"
    with pytest.raises(StoreError):
        FileSecretStore(path, password="first").get("k")


def test_file_mode(tmp_path):
    path = tmp_path / "vault.json"
    FileSecretStore(path, password="pw").set("k", b"v")
    assert os.stat(path).st_mode & 0o077 == 0


class FakeKeyring:
    def __init__(self):
        self.data = {}

    def get_password(self, service, key):
        return self.data.get((service, key))

    def set_password(self, service, key, value):
        self.data[(service, key)] = value


def test_keyring_store(monkeypatch):
    fake = FakeKeyring()
    monkeypatch.setattr(keyring, "get_password", fake.get_password)
    monkeypatch.setattr(keyring, "set_password", fake.set_password)

    store = KeyringSecretStore("otpvault-test")
    assert store.get("k") is None
    store.set("k", b"\x01\x02")
    assert store.get("k") == b"\x01\x02"
    assert ("otpvault-test", "k") in fake.data


def test_keyring_errors_become_store_errors(monkeypatch):
    def unavailable(*args):
        raise KeyringError("no backend")

    monkeypatch.setattr(keyring, "get_password", unavailable)
    monkeypatch.setattr(keyring, "set_password", unavailable)
    store = KeyringSecretStore("otpvault-test")
    with pytest.raises(StoreError):
        store.get("k")
    with pytest.raises(StoreError):
        store.set("k", b"v")
