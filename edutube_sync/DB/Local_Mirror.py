# Local_Mirror.py
#########################################
# Local Mirror Library
# Keeps the local copy of the course catalog in named key-value slots of a SQLite file.
#
# Key Features:
# - Instance-based: Each `LocalMirror` object connects to a specific DB file.
# - Client ID Tracking: Every slot write is attributed to the `client_id` that made it.
# - One canonical slot (`edutube_courses`); the legacy keys are read once by a migration
#   shim and only kept in step when `mirror_legacy_keys` is enabled.
# - Atomic writes: every configured slot is replaced inside one transaction, or none is.
# - Optional byte quota: a write that would push the stored total past `quota_bytes`
#   fails with `StorageQuotaExceeded` and leaves the previous content in place.
# - Thread-Safety: Uses thread-local storage for database connections.
####
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Dict, Any, Optional, Union, Iterable
#
# 3rd-Party Imports
from loguru import logger
from pydantic import ValidationError
#
# Local Imports
from ..courses_api.schemas import CourseRecord
from ..Metrics.metrics_logger import log_counter, log_gauge
#
#######################################################################################################################
#
# Functions:

CANONICAL_KEY = "edutube_courses"
LEGACY_KEYS = ("adminCourses", "courses_data", "user_courses")


# --- Custom Exceptions ---
class MirrorStorageError(Exception):
    """Base exception for local mirror storage errors."""
    pass


class SchemaError(MirrorStorageError):
    """Exception for schema version mismatches or migration failures."""
    pass


class StorageCorrupt(MirrorStorageError):
    """A slot holds content that is not a JSON list of valid course records."""
    def __init__(self, message: str, slot_key: str = None):
        super().__init__(message)
        self.slot_key = slot_key


class StorageQuotaExceeded(MirrorStorageError):
    """A write would exceed the configured byte quota (or the disk is full)."""
    def __init__(self, message: str, required_bytes: int = None, quota_bytes: int = None):
        super().__init__(message)
        self.required_bytes = required_bytes
        self.quota_bytes = quota_bytes


class InputError(ValueError):
    """Custom exception for input validation errors."""
    pass


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds')


# --- Database Class ---
class LocalMirror:
    _CURRENT_SCHEMA_VERSION = 1

    _TABLES_SQL_V1 = """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY NOT NULL
    );
    INSERT OR IGNORE INTO schema_version (version) VALUES (0);

    CREATE TABLE IF NOT EXISTS kv_slots (
        slot_key TEXT PRIMARY KEY NOT NULL,
        value TEXT NOT NULL,
        last_modified DATETIME NOT NULL,
        client_id TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS mirror_meta (
        meta_key TEXT PRIMARY KEY NOT NULL,
        meta_value TEXT
    );

    UPDATE schema_version SET version = 1 WHERE version = 0;
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        client_id: str,
        quota_bytes: Optional[int] = None,
        mirror_legacy_keys: bool = False,
    ):
        """
        Opens (or creates) the mirror database and runs the one-time legacy key migration.

        Args:
            db_path (Union[str, Path]): The path to the SQLite database file or ':memory:'.
            client_id (str): A unique identifier for the client writing through this instance.
            quota_bytes (Optional[int]): Upper bound on the total bytes held across all slots.
            mirror_legacy_keys (bool): Also keep the legacy keys in step on every write.

        Raises:
            ValueError: If client_id is empty or None.
            MirrorStorageError: If database initialization or schema setup fails.
        """
        if isinstance(db_path, Path):
            self.is_memory_db = False
            self.db_path = db_path.expanduser().resolve()
        else:
            self.is_memory_db = (db_path == ':memory:')
            self.db_path = Path(":memory:") if self.is_memory_db else Path(db_path).expanduser().resolve()
        self.db_path_str = ':memory:' if self.is_memory_db else str(self.db_path)

        if not client_id:
            raise ValueError("Client ID cannot be empty or None.")
        self.client_id = client_id
        if quota_bytes is not None and quota_bytes <= 0:
            raise ValueError("quota_bytes must be a positive number of bytes.")
        self.quota_bytes = quota_bytes
        self.mirror_legacy_keys = mirror_legacy_keys

        if not self.is_memory_db:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise MirrorStorageError(f"Failed to create mirror directory {self.db_path.parent}: {e}") from e

        logger.info(f"Initializing LocalMirror for path: {self.db_path_str} [Client ID: {self.client_id}]")
        self._local = threading.local()

        try:
            self._initialize_schema()
            self.migrate_legacy_keys()
        except (MirrorStorageError, sqlite3.Error) as e:
            logger.critical(f"FATAL: Local mirror initialization failed for {self.db_path_str}: {e}")
            self.close_connection()
            if isinstance(e, MirrorStorageError):
                raise
            raise MirrorStorageError(f"Local mirror initialization failed: {e}") from e

    @property
    def slot_keys(self) -> List[str]:
        """Every slot a write fans out to, canonical first."""
        if self.mirror_legacy_keys:
            return [CANONICAL_KEY, *LEGACY_KEYS]
        return [CANONICAL_KEY]

    # --- Connection Management ---
    def _get_thread_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, 'conn', None)
        if conn is not None:
            try:
                conn.execute("SELECT 1")
                return conn
            except (sqlite3.ProgrammingError, sqlite3.OperationalError):
                logger.warning(f"Thread-local connection to {self.db_path_str} was closed. Reopening.")
                self._local.conn = None

        try:
            conn = sqlite3.connect(self.db_path_str, check_same_thread=False, timeout=10)
            conn.row_factory = sqlite3.Row
            if not self.is_memory_db:
                conn.execute("PRAGMA journal_mode=WAL;")
            self._local.conn = conn
            logger.debug(
                f"Opened SQLite connection to {self.db_path_str} "
                f"[Client: {self.client_id}, Thread: {threading.current_thread().name}]"
            )
        except sqlite3.Error as e:
            self._local.conn = None
            raise MirrorStorageError(f"Failed to connect to mirror database '{self.db_path_str}': {e}") from e
        return conn

    def get_connection(self) -> sqlite3.Connection:
        return self._get_thread_connection()

    def close_connection(self):
        conn = getattr(self._local, 'conn', None)
        if conn is None:
            return
        self._local.conn = None
        try:
            conn.close()
            logger.debug(f"Closed mirror connection for thread {threading.current_thread().name}.")
        except sqlite3.Error as e:
            logger.warning(f"Error closing mirror connection: {e}")

    # --- Transaction Context ---
    @contextmanager
    def transaction(self, immediate: bool = False):
        """
        Wraps the block in one transaction. `immediate` takes the write lock up front,
        so a read-modify-write cannot interleave with another process's write.
        """
        conn = self.get_connection()
        in_outer = conn.in_transaction
        try:
            if not in_outer:
                conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            yield conn
            if not in_outer:
                conn.commit()
        except Exception as e:
            if not in_outer:
                logger.error(f"Mirror transaction failed, rolling back: {type(e).__name__} - {e}")
                try:
                    conn.rollback()
                except sqlite3.Error as rb_err:
                    logger.error(f"Rollback FAILED: {rb_err}")
            raise

    # --- Schema Initialization ---
    def _get_db_version(self, conn: sqlite3.Connection) -> int:
        try:
            result = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            return result['version'] if result else 0
        except sqlite3.Error as e:
            if "no such table: schema_version" in str(e).lower():
                return 0
            raise SchemaError(f"Could not determine schema version: {e}") from e

    def _initialize_schema(self):
        conn = self.get_connection()
        current_version = self._get_db_version(conn)
        if current_version == self._CURRENT_SCHEMA_VERSION:
            logger.debug("Mirror schema is up to date.")
            return
        if current_version > self._CURRENT_SCHEMA_VERSION:
            raise SchemaError(
                f"Mirror schema version ({current_version}) is newer than supported ({self._CURRENT_SCHEMA_VERSION})."
            )
        logger.info(f"Applying mirror schema (Version 1) to DB: {self.db_path_str}...")
        conn.executescript(self._TABLES_SQL_V1)
        conn.commit()

    # --- Raw slot access ---
    def _read_slot(self, conn: sqlite3.Connection, slot_key: str) -> Optional[str]:
        row = conn.execute("SELECT value FROM kv_slots WHERE slot_key = ?", (slot_key,)).fetchone()
        return row['value'] if row else None

    def _put_slot(self, conn: sqlite3.Connection, slot_key: str, value: str):
        conn.execute(
            "INSERT INTO kv_slots (slot_key, value, last_modified, client_id) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(slot_key) DO UPDATE SET value = excluded.value, "
            "last_modified = excluded.last_modified, client_id = excluded.client_id",
            (slot_key, value, _utc_now(), self.client_id),
        )

    def get_raw_slot(self, slot_key: str) -> Optional[str]:
        """Returns the stored text of a slot, or None when the slot is absent."""
        return self._read_slot(self.get_connection(), slot_key)

    def put_raw_slot(self, slot_key: str, value: str):
        """Stores `value` verbatim under `slot_key`. Used for seeding and repair, no validation."""
        with self._storage_errors("put_raw_slot"):
            with self.transaction(immediate=True) as conn:
                self._put_slot(conn, slot_key, value)

    def total_bytes(self) -> int:
        """Bytes held across every slot, counted the way the quota counts them."""
        row = self.get_connection().execute(
            "SELECT COALESCE(SUM(LENGTH(CAST(slot_key AS BLOB)) + LENGTH(CAST(value AS BLOB))), 0) AS total FROM kv_slots"
        ).fetchone()
        return int(row['total'])

    # --- Meta ---
    def _get_meta(self, conn: sqlite3.Connection, meta_key: str) -> Optional[str]:
        row = conn.execute("SELECT meta_value FROM mirror_meta WHERE meta_key = ?", (meta_key,)).fetchone()
        return row['meta_value'] if row else None

    def _set_meta(self, conn: sqlite3.Connection, meta_key: str, meta_value: str):
        conn.execute(
            "INSERT INTO mirror_meta (meta_key, meta_value) VALUES (?, ?) "
            "ON CONFLICT(meta_key) DO UPDATE SET meta_value = excluded.meta_value",
            (meta_key, meta_value),
        )

    # --- Serialization ---
    @staticmethod
    def _parse_records(raw: str, slot_key: str) -> List[CourseRecord]:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageCorrupt(f"Slot '{slot_key}' does not hold valid JSON: {e}", slot_key=slot_key) from e
        if not isinstance(data, list):
            raise StorageCorrupt(f"Slot '{slot_key}' does not hold a list", slot_key=slot_key)
        try:
            return [CourseRecord.model_validate(item) for item in data]
        except ValidationError as e:
            raise StorageCorrupt(f"Slot '{slot_key}' holds an invalid course record: {e}", slot_key=slot_key) from e

    @staticmethod
    def _dedupe(records: Iterable[CourseRecord]) -> List[CourseRecord]:
        """One record per identity, in first-seen order, last value winning."""
        by_key: Dict[str, CourseRecord] = {}
        for record in records:
            key = record.identity_key()
            if key is None:
                logger.warning(f"Dropping course '{record.title}' with neither id nor local ref from the mirror write.")
                continue
            if key in by_key:
                logger.warning(f"Duplicate course identity {key} in mirror write; keeping the later copy.")
            by_key[key] = record
        return list(by_key.values())

    @contextmanager
    def _storage_errors(self, operation: str):
        """Maps SQLite failures onto the mirror's exceptions."""
        try:
            yield
        except sqlite3.OperationalError as e:
            if "full" in str(e).lower():
                logger.error(f"Local mirror {operation} failed, storage is full: {e}")
                raise StorageQuotaExceeded(f"Local storage is full: {e}") from e
            logger.error(f"Local mirror {operation} failed: {e}")
            raise MirrorStorageError(f"Local mirror {operation} failed: {e}") from e
        except sqlite3.Error as e:
            logger.error(f"Local mirror {operation} failed: {e}")
            raise MirrorStorageError(f"Local mirror {operation} failed: {e}") from e

    def _write_records(self, conn: sqlite3.Connection, records: List[CourseRecord]):
        payload = json.dumps([record.to_storage() for record in records], separators=(',', ':'))
        if self.quota_bytes is not None:
            target_keys = self.slot_keys
            placeholders = ",".join("?" for _ in target_keys)
            row = conn.execute(
                "SELECT COALESCE(SUM(LENGTH(CAST(slot_key AS BLOB)) + LENGTH(CAST(value AS BLOB))), 0) AS total "
                f"FROM kv_slots WHERE slot_key NOT IN ({placeholders})",
                tuple(target_keys),
            ).fetchone()
            payload_bytes = len(payload.encode('utf-8'))
            required = int(row['total']) + sum(len(key.encode('utf-8')) + payload_bytes for key in target_keys)
            if required > self.quota_bytes:
                logger.error(f"Mirror write of {len(records)} courses needs {required} bytes, quota is {self.quota_bytes}.")
                raise StorageQuotaExceeded(
                    f"Writing {len(records)} courses needs {required} bytes but the quota is {self.quota_bytes}",
                    required_bytes=required, quota_bytes=self.quota_bytes,
                )
        for slot_key in self.slot_keys:
            self._put_slot(conn, slot_key, payload)

    def _current_records(self, conn: sqlite3.Connection) -> List[CourseRecord]:
        raw = self._read_slot(conn, CANONICAL_KEY)
        if raw is None:
            return []
        try:
            return self._parse_records(raw, CANONICAL_KEY)
        except StorageCorrupt as e:
            logger.error(f"Local mirror is corrupt, treating it as empty: {e}")
            log_counter("mirror_corrupt_reads_total")
            return []

    # --- Public API ---
    def read_all(self) -> List[CourseRecord]:
        """The mirrored collection. A missing or corrupt slot reads as an empty collection."""
        with self._storage_errors("read_all"):
            return self._current_records(self.get_connection())

    def write_all(self, records: Iterable[CourseRecord]):
        """Replaces the collection in every slot at once. On failure nothing is applied."""
        records = self._dedupe(records)
        with self._storage_errors("write_all"):
            with self.transaction(immediate=True) as conn:
                self._write_records(conn, records)
        log_gauge("mirror_course_count", len(records))
        logger.debug(f"Mirror now holds {len(records)} courses across {len(self.slot_keys)} slot(s).")

    def upsert_one(self, record: CourseRecord, pending_ref: Optional[str] = None) -> CourseRecord:
        """
        Replaces the record with the same identity, or appends it.

        Identity is the store id, or the local ref for a pending record. `pending_ref`
        names the pending entry a freshly created record takes the place of.

        Raises:
            InputError: The record has no identity, or it is a pending record whose local
                ref already belongs to a persisted course.
        """
        if record.identity_key() is None:
            raise InputError(f"Course '{record.title}' has neither an id nor a local ref.")
        if pending_ref and not record.local_ref:
            record = record.model_copy(update={'local_ref': pending_ref})

        with self._storage_errors("upsert_one"):
            with self.transaction(immediate=True) as conn:
                current = self._current_records(conn)
                if record.is_pending:
                    for existing in current:
                        if existing.id and existing.local_ref == record.local_ref:
                            raise InputError(
                                f"Pending course ref {record.local_ref} is already persisted as {existing.id}."
                            )
                if pending_ref:
                    current = [r for r in current if not (r.is_pending and r.local_ref == pending_ref)]

                key = record.identity_key()
                updated: List[CourseRecord] = []
                replaced = False
                for existing in current:
                    if existing.identity_key() == key:
                        if not replaced:
                            updated.append(record)
                            replaced = True
                        continue
                    updated.append(existing)
                if not replaced:
                    updated.append(record)
                self._write_records(conn, updated)
        logger.debug(f"Upserted course {key} ({'replaced' if replaced else 'appended'}).")
        return record

    def remove_one(self, course_id: str) -> bool:
        """Removes the course with this id (or identity key). Returns whether one was present."""
        if not course_id:
            return False
        with self._storage_errors("remove_one"):
            with self.transaction(immediate=True) as conn:
                current = self._current_records(conn)
                kept = [r for r in current if r.id != course_id and r.identity_key() != course_id]
                if len(kept) == len(current):
                    return False
                self._write_records(conn, kept)
        logger.debug(f"Removed course {course_id} from the local mirror.")
        return True

    def slot_report(self) -> Dict[str, Dict[str, Any]]:
        """Per-slot diagnostic for the canonical and legacy keys: found, count, titles, error."""
        report: Dict[str, Dict[str, Any]] = {}
        conn = self.get_connection()
        for slot_key in (CANONICAL_KEY, *LEGACY_KEYS):
            entry: Dict[str, Any] = {"found": False, "count": 0, "titles": [], "error": None}
            try:
                raw = self._read_slot(conn, slot_key)
                if raw is not None:
                    entry["found"] = True
                    records = self._parse_records(raw, slot_key)
                    entry["count"] = len(records)
                    entry["titles"] = [r.title for r in records]
            except (StorageCorrupt, sqlite3.Error) as e:
                entry["error"] = str(e)
            report[slot_key] = entry
        return report

    # --- Legacy migration ---
    def migrate_legacy_keys(self) -> Optional[str]:
        """
        Seeds the canonical slot from the first readable legacy key when the canonical
        slot is absent. Once the canonical slot exists, legacy keys are dropped unless
        they are still mirrored. Returns the legacy key migrated from, if any.
        """
        migrated_from = None
        with self._storage_errors("migrate_legacy_keys"):
            with self.transaction(immediate=True) as conn:
                if self._read_slot(conn, CANONICAL_KEY) is None:
                    for legacy_key in LEGACY_KEYS:
                        raw = self._read_slot(conn, legacy_key)
                        if raw is None:
                            continue
                        try:
                            records = self._dedupe(self._parse_records(raw, legacy_key))
                        except StorageCorrupt as e:
                            logger.warning(f"Skipping unreadable legacy key during migration: {e}")
                            continue
                        self._write_records(conn, records)
                        self._set_meta(conn, "legacy_migrated_from", legacy_key)
                        migrated_from = legacy_key
                        logger.info(
                            f"Migrated {len(records)} courses from legacy key '{legacy_key}' to '{CANONICAL_KEY}'."
                        )
                        break
                if self._read_slot(conn, CANONICAL_KEY) is not None and not self.mirror_legacy_keys:
                    placeholders = ",".join("?" for _ in LEGACY_KEYS)
                    conn.execute(f"DELETE FROM kv_slots WHERE slot_key IN ({placeholders})", LEGACY_KEYS)
        return migrated_from

    def migrated_from(self) -> Optional[str]:
        """The legacy key the canonical slot was seeded from, if any."""
        return self._get_meta(self.get_connection(), "legacy_migrated_from")

#
# End of Local_Mirror.py
#######################################################################################################################
