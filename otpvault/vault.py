"""The vault: the one collection that owns key records.

Records are only changed through the vault. HOTP generation takes a
per-record lock so every generated code consumes exactly one counter value.
Store I/O runs on an executor and hands results back through futures.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Callable, Iterable

from otpvault import codec, generator
from otpvault.config import LEGACY_STORAGE_KEY, STORAGE_KEY
from otpvault.generator import Code
from otpvault.migration import SCHEME as MIGRATION_SCHEME
from otpvault.migration import parse_migration_uri
from otpvault.models import KeyRecord
from otpvault.store import SecretStore
from otpvault.uri import parse_otpauth_uri

logger = logging.getLogger(__name__)


def parse_any_uri(text: str) -> list[KeyRecord]:
    """Parse an otpauth:// or otpauth-migration:// URI into records."""
    if text.strip().lower().startswith(MIGRATION_SCHEME + ":"):
        return parse_migration_uri(text)
    return [parse_otpauth_uri(text)]


class Vault:
    def __init__(self, store: SecretStore, executor: Executor | None = None,
                 on_change: Callable[["Vault"], None] | None = None,
                 storage_key: str = STORAGE_KEY,
                 legacy_key: str | None = LEGACY_STORAGE_KEY):
        self.store = store
        self.storage_key = storage_key
        self.legacy_key = legacy_key
        self.on_change = on_change
        self._executor = executor
        self._owns_executor = False
        self._records: dict[str, KeyRecord] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    # ==================== Collection ====================

    def __len__(self):
        return len(self._records)

    def __iter__(self):
        return iter(self.records())

    def __contains__(self, record_id):
        return record_id in self._records

    def records(self) -> list[KeyRecord]:
        return list(self._records.values())

    def get(self, record_id: str) -> KeyRecord:
        try:
            return self._records[record_id]
        except KeyError:
            raise KeyError(f"No key with id {record_id!r}") from None

    def find(self, query: str) -> KeyRecord:
        """Look a record up by id, exact label, or unique label prefix (case-insensitive)."""
        if query in self._records:
            return self._records[query]
        needle = query.lower()
        exact = [r for r in self._records.values() if r.label.lower() == needle]
        if len(exact) == 1:
            return exact[0]
        matches = exact or [r for r in self._records.values() if r.label.lower().startswith(needle)]
        if not matches:
            raise KeyError(f"No key matching {query!r}")
        if len(matches) > 1:
            labels = ", ".join(repr(r.label) for r in matches)
            raise KeyError(f"{query!r} is ambiguous: {labels}")
        return matches[0]

    def _changed(self):
        if self.on_change is not None:
            self.on_change(self)

    def _install(self, records: Iterable[KeyRecord]):
        with self._guard:
            self._records = {r.id: r for r in records}
            self._locks = {}
        self._changed()

    def add(self, record: KeyRecord) -> KeyRecord:
        with self._guard:
            if record.id in self._records:
                raise ValueError(f"Key {record.id!r} is already in the vault")
            self._records[record.id] = record
        logger.debug("Added %s key %r", record.type.value, record.label)
        self._changed()
        return record

    def extend(self, records: Iterable[KeyRecord]) -> list[KeyRecord]:
        """Add ``records`` that are not already present, by id or by content."""
        added = []
        with self._guard:
            for record in records:
                if record.id in self._records:
                    logger.info("Skipping key %r, id %s is already in the vault", record.label, record.id)
                    continue
                if record in self._records.values() or record in added:
                    logger.info("Skipping duplicate key %r", record.label)
                    continue
                self._records[record.id] = record
                added.append(record)
        if added:
            self._changed()
        return added

    def add_uri(self, text: str) -> list[KeyRecord]:
        """Import every key in a URI; nothing is added if any of them fails to parse."""
        return self.extend(parse_any_uri(text))

    def remove(self, record_id: str) -> KeyRecord:
        with self._guard:
            record = self._records.pop(record_id, None)
            self._locks.pop(record_id, None)
        if record is None:
            raise KeyError(f"No key with id {record_id!r}")
        self._changed()
        return record

    def rename(self, record_id: str, label: str) -> KeyRecord:
        if not label:
            raise ValueError("label must not be empty")
        record = self.get(record_id)
        record.label = label
        self._changed()
        return record

    def recolor(self, record_id: str, color: tuple[int, int, int]) -> KeyRecord:
        record = self.get(record_id)
        record.color = tuple(color)
        self._changed()
        return record

    def move(self, record_id: str, index: int) -> None:
        """Move a record to position ``index`` in the listing order."""
        with self._guard:
            record = self._records.pop(record_id, None)
            if record is None:
                raise KeyError(f"No key with id {record_id!r}")
            order = list(self._records.values())
            order.insert(index, record)
            self._records = {r.id: r for r in order}
        self._changed()

    # ==================== Codes ====================

    def _lock_for(self, record_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(record_id, threading.Lock())

    def code(self, record_id: str, now: int | None = None) -> Code:
        """Generate the code for a record.

        TOTP is a pure function of the record and ``now``. HOTP consumes the
        current counter and advances it, one caller at a time.
        """
        record = self.get(record_id)
        if not record.is_hotp:
            return generator.totp(record, now)
        with self._lock_for(record_id):
            code = generator.advance(record)
        self._changed()
        return code

    # ==================== Persistence ====================

    def _read(self) -> list[KeyRecord]:
        blob = self.store.get(self.storage_key)
        if blob is None and self.legacy_key:
            blob = self.store.get(self.legacy_key)
            if blob is not None:
                logger.info("Loaded keys from legacy storage key %r", self.legacy_key)
        if not blob:
            return []
        return codec.deserialize(blob)

    def load_sync(self) -> list[KeyRecord]:
        records = self._read()
        self._install(records)
        logger.debug("Loaded %d keys", len(records))
        return records

    def save_sync(self) -> int:
        records = self.records()
        self.store.set(self.storage_key, codec.serialize(records))
        logger.debug("Saved %d keys", len(records))
        return len(records)

    def _submit(self, fn, *args) -> Future:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="otpvault-store")
            self._owns_executor = True
        return self._executor.submit(fn, *args)

    def load(self) -> Future:
        """Read records from the store in the background.

        The future resolves to the loaded records, which must be handed to
        ``apply_loaded`` by the thread that owns the vault.
        """
        return self._submit(self._read)

    def apply_loaded(self, future: Future) -> list[KeyRecord]:
        records = future.result()
        self._install(records)
        return records

    def save(self) -> Future:
        """Write a snapshot of the current records in the background."""
        blob = codec.serialize(self.records())
        count = len(self)
        def write():
            self.store.set(self.storage_key, blob)
            logger.debug("Saved %d keys", count)
            return count
        return self._submit(write)

    def close(self):
        if self._owns_executor:
            self._executor.shutdown(wait=True)
            self._executor = None
            self._owns_executor = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
