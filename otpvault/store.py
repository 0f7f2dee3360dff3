"""Secret stores: where the serialized record blob lives.

A store only has to get and set bytes by key. ``FileSecretStore`` keeps a
JSON file encrypted with a master password, ``KeyringSecretStore`` uses the
OS keyring and ``MemorySecretStore`` is a dict.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

import keyring
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from keyring.errors import KeyringError

from otpvault.errors import DecodeError, StoreError

logger = logging.getLogger(__name__)

KDF_ITERATIONS = 480000
SALT_BYTES = 16
FILE_VERSION = 1


class SecretStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...


def atomic_write(path: Path, data: bytes, mode: int = 0o600) -> None:
    """Replace ``path`` with ``data`` so readers see the old or new file, never half of one."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


# ==================== Encryption ====================

def derive_key(password: str, salt: bytes) -> bytes:
    """Derive encryption key from password"""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(password.encode()))


class MemorySecretStore:
    def __init__(self, initial: dict[str, bytes] | None = None):
        self.data = dict(initial or {})

    def get(self, key: str) -> bytes | None:
        return self.data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self.data[key] = bytes(value)


class FileSecretStore:
    """Values kept in one JSON file, Fernet-encrypted when a password is set.

    File layout::

        {"version": 1, "encrypted": true, "salt": "<b64>", "entries": {"<key>": "<token>"}}

    Unencrypted files hold base64 values instead of Fernet tokens.
    """

    def __init__(self, path, password: str | None = None):
        self.path = Path(path)
        self.password = password
        self._fernet_cache: dict[bytes, Fernet] = {}

    def _fernet(self, salt: bytes) -> Fernet:
        if salt not in self._fernet_cache:
            self._fernet_cache[salt] = Fernet(derive_key(self.password, salt))
        return self._fernet_cache[salt]

    def _read(self) -> dict | None:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                stored = json.load(f)
        except ValueError as e:
            raise DecodeError(f"Corrupted vault file {self.path}: {e}") from e
        except OSError as e:
            raise StoreError(f"Could not read {self.path}: {e}") from e
        if not isinstance(stored, dict) or not isinstance(stored.get("entries"), dict):
            raise DecodeError(f"Corrupted vault file {self.path}: no entries")
        return stored

    def _write(self, stored: dict) -> None:
        try:
            atomic_write(self.path, json.dumps(stored, indent=2).encode("utf-8"))
        except OSError as e:
            raise StoreError(f"Could not write {self.path}: {e}") from e

    def is_encrypted(self) -> bool:
        stored = self._read()
        if stored is None:
            return self.password is not None
        return bool(stored.get("encrypted"))

    def _salt(self, stored: dict) -> bytes:
        try:
            return base64.b64decode(stored["salt"])
        except (KeyError, TypeError, binascii.Error) as e:
            raise DecodeError(f"Corrupted vault file {self.path}: bad salt") from e

    def _decrypt(self, stored: dict, token: str) -> bytes:
        if self.password is None:
            raise StoreError("Vault is encrypted, a master password is required")
        try:
            return self._fernet(self._salt(stored)).decrypt(token.encode())
        except InvalidToken:
            raise StoreError("Invalid password or corrupted data") from None

    def get(self, key: str) -> bytes | None:
        stored = self._read()
        if stored is None:
            return None
        token = stored["entries"].get(key)
        if token is None:
            return None
        if not isinstance(token, str):
            raise DecodeError(f"Corrupted vault entry {key!r}")
        if stored.get("encrypted"):
            return self._decrypt(stored, token)
        try:
            return base64.b64decode(token, validate=True)
        except binascii.Error as e:
            raise DecodeError(f"Corrupted vault entry {key!r}: {e}") from e

    def _empty(self, encrypted: bool) -> dict:
        stored = {"version": FILE_VERSION, "encrypted": encrypted, "entries": {}}
        if encrypted:
            stored["salt"] = base64.b64encode(os.urandom(SALT_BYTES)).decode()
        return stored

    def set(self, key: str, value: bytes) -> None:
        stored = self._read()
        if stored is None:
            stored = self._empty(self.password is not None)

        if stored.get("encrypted"):
            if self.password is None:
                raise StoreError("Vault is encrypted, a master password is required")
            # Refuse to add an entry the existing ones could not be read with
            for existing in stored["entries"].values():
                self._decrypt(stored, existing)
                break
            token = self._fernet(self._salt(stored)).encrypt(bytes(value)).decode()
        else:
            if self.password is not None:
                logger.warning("Storing into an unencrypted vault; run 'otp init' to encrypt it")
            token = base64.b64encode(bytes(value)).decode()

        stored["entries"][key] = token
        self._write(stored)
        logger.debug("Wrote %d bytes under %r to %s", len(value), key, self.path)

    def rekey(self, new_password: str) -> None:
        """Re-encrypt every entry under ``new_password`` with a fresh salt."""
        stored = self._read()
        entries = {}
        if stored is not None:
            entries = {key: self.get(key) for key in stored["entries"]}

        self.password = new_password
        self._fernet_cache.clear()
        rekeyed = self._empty(encrypted=True)
        fernet = self._fernet(self._salt(rekeyed))
        for key, value in entries.items():
            rekeyed["entries"][key] = fernet.encrypt(value).decode()
        self._write(rekeyed)
        logger.debug("Re-encrypted %d entries in %s", len(entries), self.path)


class KeyringSecretStore:
    """Values kept as base64 text in the OS keyring under one service name."""

    def __init__(self, service: str):
        self.service = service

    def get(self, key: str) -> bytes | None:
        try:
            text = keyring.get_password(self.service, key)
        except KeyringError as e:
            raise StoreError(f"Keyring unavailable: {e}") from e
        if text is None:
            return None
        try:
            return base64.b64decode(text, validate=True)
        except binascii.Error as e:
            raise DecodeError(f"Corrupted keyring entry {key!r}: {e}") from e

    def set(self, key: str, value: bytes) -> None:
        try:
            keyring.set_password(self.service, key, base64.b64encode(bytes(value)).decode())
        except KeyringError as e:
            raise StoreError(f"Keyring unavailable: {e}") from e
