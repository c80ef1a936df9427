"""
Feature record persistence.

The engine only relies on the Store interface: atomic upsert keyed by
media reference, idempotent delete, point lookup and a lazy scan.
Two backends are provided: an in-memory dict (tests, single process) and
SQLite (one row per media item, blobs stored as-is).
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

from .errors import RecordFormatError, StoreError
from .models import FeatureRecord

logger = logging.getLogger(__name__)


class Store(ABC):
    """Abstract base class for feature record backends."""

    @abstractmethod
    def get(self, media_ref: str) -> Optional[FeatureRecord]:
        """
        Return the record for media_ref, or None if it is not indexed.

        Raises:
            RecordFormatError: If the stored row cannot be read back.
        """

    @abstractmethod
    def upsert(self, record: FeatureRecord) -> None:
        """Insert or wholly replace the record keyed by record.media_ref."""

    @abstractmethod
    def delete(self, media_ref: str) -> None:
        """Remove the record for media_ref. No-op if absent."""

    @abstractmethod
    def iterate(self) -> Iterator[FeatureRecord]:
        """Yield every stored record. Rows that cannot be read back are logged and skipped."""


class InMemoryStore(Store):
    """Dict-backed store. Safe for concurrent writers on distinct keys."""

    def __init__(self) -> None:
        self._records: Dict[str, FeatureRecord] = {}
        self._lock = threading.Lock()

    def get(self, media_ref: str) -> Optional[FeatureRecord]:
        with self._lock:
            return self._records.get(media_ref)

    def upsert(self, record: FeatureRecord) -> None:
        with self._lock:
            self._records[record.media_ref] = record

    def delete(self, media_ref: str) -> None:
        with self._lock:
            self._records.pop(media_ref, None)

    def iterate(self) -> Iterator[FeatureRecord]:
        with self._lock:
            snapshot = list(self._records.values())
        return iter(snapshot)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class SQLiteStore(Store):
    """
    SQLite-backed store.

    Schema (one row per media item):
        id, media_ref (unique), phash (16 hex chars), color_histogram
        BLOB, edge_features BLOB, created_at / updated_at (ISO-8601).
    """

    TABLE = "feature_records"

    def __init__(self, path: Union[str, Path] = ":memory:") -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.TABLE} (
                    media_ref TEXT PRIMARY KEY,
                    id TEXT NOT NULL,
                    phash TEXT NOT NULL,
                    color_histogram BLOB NOT NULL,
                    edge_features BLOB NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            self._conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Could not open feature store at {self.path}: {exc}") from exc
        self._lock = threading.Lock()

    @staticmethod
    def _to_record(row) -> FeatureRecord:
        media_ref, record_id, phash, color, edge, created, updated = row
        try:
            return FeatureRecord(
                id=record_id,
                media_ref=media_ref,
                phash=phash,
                color_histogram=bytes(color),
                edge_features=bytes(edge),
                created_at=datetime.fromisoformat(created),
                updated_at=datetime.fromisoformat(updated),
            )
        except (TypeError, ValueError) as exc:
            raise RecordFormatError(f"Stored row for {media_ref!r} is malformed: {exc}") from exc

    def get(self, media_ref: str) -> Optional[FeatureRecord]:
        try:
            with self._lock:
                row = self._conn.execute(
                    f"SELECT media_ref, id, phash, color_histogram, edge_features, "
                    f"created_at, updated_at FROM {self.TABLE} WHERE media_ref = ?",
                    (media_ref,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Lookup of {media_ref!r} failed: {exc}") from exc
        return self._to_record(row) if row else None

    def upsert(self, record: FeatureRecord) -> None:
        try:
            with self._lock:
                self._conn.execute(
                    f"""
                    INSERT INTO {self.TABLE}
                        (media_ref, id, phash, color_histogram, edge_features,
                         created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(media_ref) DO UPDATE SET
                        id = excluded.id,
                        phash = excluded.phash,
                        color_histogram = excluded.color_histogram,
                        edge_features = excluded.edge_features,
                        created_at = excluded.created_at,
                        updated_at = excluded.updated_at
                    """,
                    (
                        record.media_ref,
                        record.id,
                        record.phash,
                        sqlite3.Binary(record.color_histogram),
                        sqlite3.Binary(record.edge_features),
                        record.created_at.isoformat(),
                        record.updated_at.isoformat(),
                    ),
                )
                self._conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Upsert of {record.media_ref!r} failed: {exc}") from exc

    def delete(self, media_ref: str) -> None:
        try:
            with self._lock:
                self._conn.execute(
                    f"DELETE FROM {self.TABLE} WHERE media_ref = ?", (media_ref,)
                )
                self._conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Delete of {media_ref!r} failed: {exc}") from exc

    def iterate(self) -> Iterator[FeatureRecord]:
        try:
            with self._lock:
                rows = self._conn.execute(
                    f"SELECT media_ref, id, phash, color_histogram, edge_features, "
                    f"created_at, updated_at FROM {self.TABLE} ORDER BY media_ref"
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Scan of feature store failed: {exc}") from exc
        for row in rows:
            try:
                record = self._to_record(row)
            except RecordFormatError as e:
                logger.warning(f"Skipping row {row[0]!r}, needs re-index: {e}")
                continue
            yield record

    def close(self) -> None:
        self._conn.close()
