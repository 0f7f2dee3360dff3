"""Locations and settings, taken from the environment at call time."""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path

logger = logging.getLogger(__name__)

APP_NAME = "otpvault"

STORAGE_KEY = "otpvault.records"
# Read when STORAGE_KEY has nothing, never written
LEGACY_STORAGE_KEY = "otpstoredata"
KEYRING_SERVICE = "otpvault"

STORE_BACKENDS = ("file", "keyring")
DEFAULT_STORE_BACKEND = "file"

PASSWORD_CACHE_TTL = 300  # 5 minutes


def get_data_dir() -> Path:
    """Directory holding the vault file"""
    override = os.environ.get("OTPVAULT_HOME")
    if override:
        return Path(override).expanduser()
    # Use XDG_DATA_HOME or fallback to ~/.local/share
    xdg_data = os.environ.get("XDG_DATA_HOME", os.path.expanduser("~/.local/share"))
    return Path(xdg_data) / APP_NAME


def get_storage_path() -> Path:
    """Get the path to the storage file"""
    return get_data_dir() / "vault.json"


def get_store_backend() -> str:
    backend = os.environ.get("OTPVAULT_STORE", DEFAULT_STORE_BACKEND).strip().lower()
    if backend not in STORE_BACKENDS:
        raise ValueError(f"OTPVAULT_STORE must be one of {', '.join(STORE_BACKENDS)}, got {backend!r}")
    return backend


def get_env_password() -> str | None:
    return os.environ.get("OTPVAULT_PASSWORD") or None


# ==================== Password Cache ====================

def get_cache_path() -> Path:
    """Get the path to the password cache file"""
    xdg_runtime = os.environ.get("XDG_RUNTIME_DIR", "/tmp")
    return Path(xdg_runtime) / f"{APP_NAME}-{os.getuid()}.cache"


def get_cached_password() -> str | None:
    """Get cached password if still valid"""
    cache_path = get_cache_path()
    if not cache_path.exists():
        return None

    try:
        with open(cache_path, "r") as f:
            cache = json.load(f)
    except (OSError, ValueError) as e:
        logger.debug("Ignoring unreadable password cache %s: %s", cache_path, e)
        cache_path.unlink(missing_ok=True)
        return None

    if cache.get("expires", 0) > time.time():
        return cache.get("password")
    cache_path.unlink(missing_ok=True)
    return None


def set_cached_password(password: str):
    """Cache password for TTL seconds"""
    cache_path = get_cache_path()
    cache = {"password": password, "expires": time.time() + PASSWORD_CACHE_TTL}
    fd = os.open(cache_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        json.dump(cache, f)


def clear_cached_password():
    get_cache_path().unlink(missing_ok=True)
