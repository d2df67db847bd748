"""SQLite store for hives, the inspection log, and parked unresolved records.

Implements the InspectionStore capability (load / append / project_latest /
transaction) plus registry maintenance and human edits of inspections.

Observation values are stored as a JSON object keyed by the wire field
names, so the external key contract survives storage unchanged.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from hivelog.errors import HiveNotFoundError, InspectionNotFoundError
from hivelog.extraction.schemas import FIELDS_BY_KEY, ExtractionRecord
from hivelog.extraction.validator import check_field
from hivelog.models import (
    Hive,
    InspectionRecord,
    format_timestamp,
    parse_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
-- Hive registry (position = registration order, used by positional matching)
CREATE TABLE IF NOT EXISTS hives (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    location TEXT,
    notes TEXT,
    color TEXT,
    date_added TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1 CHECK(is_active IN (0, 1)),
    position INTEGER NOT NULL,

    -- Latest-inspection projection (derived, maintained by reconciliation)
    latest_inspection_id TEXT,
    last_inspected_at TEXT,

    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    updated_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_hives_position ON hives(position);

CREATE TRIGGER IF NOT EXISTS update_hives_timestamp
    AFTER UPDATE ON hives
    FOR EACH ROW
    BEGIN
        UPDATE hives SET updated_at = strftime('%Y-%m-%dT%H:%M:%f', 'now')
        WHERE id = NEW.id;
    END;

-- Append-only inspection log
CREATE TABLE IF NOT EXISTS inspections (
    id TEXT PRIMARY KEY,
    hive_id TEXT NOT NULL,
    hive_name TEXT NOT NULL,
    inspection_date TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    source TEXT NOT NULL DEFAULT 'ai' CHECK(source IN ('ai', 'manual')),
    recording_session_id TEXT,
    confirmed INTEGER NOT NULL DEFAULT 0 CHECK(confirmed IN (0, 1)),
    observations_json TEXT NOT NULL DEFAULT '{}',
    edited_by TEXT,
    edited_at TEXT,
    notes TEXT,
    FOREIGN KEY (hive_id) REFERENCES hives(id)
);

CREATE INDEX IF NOT EXISTS idx_inspections_hive ON inspections(hive_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_inspections_session ON inspections(recording_session_id);

-- Extraction records that matched no hive, awaiting manual assignment
CREATE TABLE IF NOT EXISTS unresolved_extractions (
    unresolved_id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    payload_json TEXT NOT NULL,
    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_unresolved_session ON unresolved_extractions(session_id);
"""

INSERT_INSPECTION_SQL = """
INSERT INTO inspections(id, hive_id, hive_name, inspection_date, timestamp, source,
                        recording_session_id, confirmed, observations_json,
                        edited_by, edited_at, notes)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

# Only move the pointer forward; equal timestamps let the later write win.
PROJECT_LATEST_SQL = """
UPDATE hives
SET latest_inspection_id = ?, last_inspected_at = ?
WHERE id = ? AND (last_inspected_at IS NULL OR last_inspected_at <= ?)
"""


# attribute name -> wire key
_ATTR_TO_KEY: dict[str, str] = {spec.attr: key for key, spec in FIELDS_BY_KEY.items()}


def _observations_json(inspection: InspectionRecord) -> str:
    payload = {
        _ATTR_TO_KEY[attr]: value
        for attr, value in inspection.model_dump(mode="json", exclude_none=True).items()
        if attr in _ATTR_TO_KEY
    }
    return json.dumps(payload, ensure_ascii=False)


class Database:
    """SQLite-backed hive registry and inspection log.

    Usage:
        with Database("data/hivelog.db") as db:
            hive = db.add_hive("Main Hive")
            engine = ReconciliationEngine(db)
            engine.reconcile(session_id, records)
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(
            self.db_path,
            autocommit=sqlite3.LEGACY_TRANSACTION_CONTROL,
        )
        self.conn.row_factory = sqlite3.Row
        self._tx_depth = 0
        self._setup_pragmas()
        self._setup_schema()

    def _setup_pragmas(self) -> None:
        """Configure SQLite pragmas for performance and reliability."""
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA synchronous=NORMAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self.conn.execute("PRAGMA temp_store=MEMORY")

        result = self.conn.execute("PRAGMA journal_mode").fetchone()[0]
        if result != "wal" and self.db_path != ":memory:":
            logger.warning("WAL mode not enabled, got: %s", result)

    def _setup_schema(self) -> None:
        """Create tables, indexes, and triggers if they don't exist."""
        self.conn.executescript(SCHEMA_SQL)
        self.conn.execute("PRAGMA user_version = 1")

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit everything inside the outermost block at once, or roll back.

        Nested blocks join the enclosing transaction.
        """
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield
            finally:
                self._tx_depth -= 1
            return

        self._tx_depth = 1
        try:
            with self.conn:
                yield
        finally:
            self._tx_depth = 0

    # -- hive registry --------------------------------------------------

    @staticmethod
    def _row_to_hive(row: sqlite3.Row) -> Hive:
        return Hive(
            id=row["id"],
            name=row["name"],
            location=row["location"],
            notes=row["notes"],
            color=row["color"],
            date_added=row["date_added"],
            is_active=bool(row["is_active"]),
            latest_inspection_id=row["latest_inspection_id"],
            last_inspected_at=parse_timestamp(row["last_inspected_at"]),
        )

    def add_hive(
        self,
        name: str,
        location: str | None = None,
        notes: str | None = None,
        color: str | None = None,
    ) -> Hive:
        """Register a new active hive at the end of the registry order.

        Raises:
            ValueError: If *name* is empty.
        """
        if not name or not name.strip():
            raise ValueError("Hive name is required")

        hive = Hive(
            id=str(uuid.uuid4()),
            name=name.strip(),
            location=location.strip() if location and location.strip() else None,
            notes=notes.strip() if notes and notes.strip() else None,
            color=color,
            date_added=utc_now().date().isoformat(),
        )
        with self.transaction():
            row = self.conn.execute("SELECT COALESCE(MAX(position), 0) AS pos FROM hives").fetchone()
            self.conn.execute(
                """INSERT INTO hives(id, name, location, notes, color, date_added, position)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    hive.id,
                    hive.name,
                    hive.location,
                    hive.notes,
                    hive.color,
                    hive.date_added,
                    row["pos"] + 1,
                ),
            )
        logger.info("Added hive %s (%s)", hive.name, hive.id)
        return hive

    def get_hive(self, hive_id: str) -> Hive | None:
        """Look up a hive by id, active or not."""
        row = self.conn.execute("SELECT * FROM hives WHERE id = ?", (hive_id,)).fetchone()
        return self._row_to_hive(row) if row else None

    def list_hives(self, include_inactive: bool = False) -> list[Hive]:
        """Return hives in registration order."""
        sql = "SELECT * FROM hives"
        if not include_inactive:
            sql += " WHERE is_active = 1"
        sql += " ORDER BY position"
        return [self._row_to_hive(row) for row in self.conn.execute(sql).fetchall()]

    def load(self) -> list[Hive]:
        """Return active hives in registration order (registry snapshot)."""
        return self.list_hives()

    def rename_hive(self, hive_id: str, name: str) -> None:
        """Rename a hive. Existing inspections keep the name they were created with.

        Raises:
            ValueError: If *name* is empty.
            HiveNotFoundError: If no hive has *hive_id*.
        """
        if not name or not name.strip():
            raise ValueError("Hive name is required")
        with self.transaction():
            cursor = self.conn.execute(
                "UPDATE hives SET name = ? WHERE id = ?", (name.strip(), hive_id)
            )
        if cursor.rowcount == 0:
            raise HiveNotFoundError(hive_id)

    def deactivate_hive(self, hive_id: str) -> None:
        """Soft-delete a hive. Its inspections stay in the log.

        Raises:
            HiveNotFoundError: If no hive has *hive_id*.
        """
        with self.transaction():
            cursor = self.conn.execute("UPDATE hives SET is_active = 0 WHERE id = ?", (hive_id,))
        if cursor.rowcount == 0:
            raise HiveNotFoundError(hive_id)
        logger.info("Deactivated hive %s", hive_id)

    # -- inspection log -------------------------------------------------

    @staticmethod
    def _row_to_inspection(row: sqlite3.Row) -> InspectionRecord:
        data: dict[str, object] = json.loads(row["observations_json"])
        data.update(
            id=row["id"],
            hive_id=row["hive_id"],
            hive_name=row["hive_name"],
            inspection_date=row["inspection_date"],
            timestamp=row["timestamp"],
            source=row["source"],
            recording_session_id=row["recording_session_id"],
            confirmed=bool(row["confirmed"]),
            edited_by=row["edited_by"],
            edited_at=row["edited_at"],
            notes=row["notes"],
        )
        return InspectionRecord.model_validate(data)

    @staticmethod
    def _inspection_params(inspection: InspectionRecord) -> tuple:
        return (
            inspection.id,
            inspection.hive_id,
            inspection.hive_name,
            inspection.inspection_date.isoformat(),
            format_timestamp(inspection.timestamp),
            inspection.source.value,
            inspection.recording_session_id,
            int(inspection.confirmed),
            _observations_json(inspection),
            inspection.edited_by,
            format_timestamp(inspection.edited_at) if inspection.edited_at else None,
            inspection.notes,
        )

    def append(self, records: Sequence[InspectionRecord]) -> None:
        """Append inspection records to the log in one transaction."""
        with self.transaction():
            self.conn.executemany(
                INSERT_INSPECTION_SQL, [self._inspection_params(r) for r in records]
            )

    def project_latest(self, hive_id: str, inspection: InspectionRecord) -> bool:
        """Point *hive_id* at *inspection* unless it already has a newer one."""
        stamp = format_timestamp(inspection.timestamp)
        with self.transaction():
            cursor = self.conn.execute(PROJECT_LATEST_SQL, (inspection.id, stamp, hive_id, stamp))
        return cursor.rowcount > 0

    def recompute_latest(self, hive_id: str) -> InspectionRecord | None:
        """Rebuild a hive's projection from the full inspection log.

        Among equal timestamps the most recently appended inspection wins.
        """
        row = self.conn.execute(
            """SELECT * FROM inspections WHERE hive_id = ?
               ORDER BY timestamp DESC, rowid DESC LIMIT 1""",
            (hive_id,),
        ).fetchone()
        latest = self._row_to_inspection(row) if row else None
        with self.transaction():
            self.conn.execute(
                "UPDATE hives SET latest_inspection_id = ?, last_inspected_at = ? WHERE id = ?",
                (
                    latest.id if latest else None,
                    format_timestamp(latest.timestamp) if latest else None,
                    hive_id,
                ),
            )
        return latest

    def get_inspection(self, inspection_id: str) -> InspectionRecord | None:
        row = self.conn.execute(
            "SELECT * FROM inspections WHERE id = ?", (inspection_id,)
        ).fetchone()
        return self._row_to_inspection(row) if row else None

    def get_inspections(self, hive_id: str | None = None, limit: int = 200) -> list[InspectionRecord]:
        """Return inspections newest first, optionally for one hive."""
        sql = "SELECT * FROM inspections"
        params: list[object] = []
        if hive_id is not None:
            sql += " WHERE hive_id = ?"
            params.append(hive_id)
        sql += " ORDER BY timestamp DESC, rowid DESC LIMIT ?"
        params.append(limit)
        return [self._row_to_inspection(row) for row in self.conn.execute(sql, params).fetchall()]

    def get_latest_inspection(self, hive_id: str) -> InspectionRecord | None:
        """Follow the hive's projection pointer."""
        row = self.conn.execute(
            """SELECT i.* FROM inspections i
               JOIN hives h ON h.latest_inspection_id = i.id
               WHERE h.id = ?""",
            (hive_id,),
        ).fetchone()
        return self._row_to_inspection(row) if row else None

    def get_inspection_count(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) AS cnt FROM inspections").fetchone()
        return row["cnt"]

    def edit_inspection(
        self,
        inspection_id: str,
        editor: str,
        changes: dict[str, object],
        notes: str | None = None,
    ) -> InspectionRecord:
        """Apply a human edit to an inspection's observations.

        Args:
            inspection_id: Inspection to edit.
            editor: Who made the edit (stamped as ``edited_by``).
            changes: Wire-key -> value; a None value clears the field.
            notes: Optional replacement for the free-text notes.

        Returns:
            The updated InspectionRecord.

        Raises:
            InspectionNotFoundError: If the inspection does not exist.
            ValueError: If a key is unknown or a value fails validation.
        """
        if not editor or not editor.strip():
            raise ValueError("Editor is required")

        current = self.get_inspection(inspection_id)
        if current is None:
            raise InspectionNotFoundError(inspection_id)

        observations = json.loads(_observations_json(current))
        problems: list[str] = []
        for key, value in changes.items():
            if key not in FIELDS_BY_KEY:
                problems.append(f"unknown field '{key}'")
                continue
            if value is None:
                observations.pop(key, None)
                continue
            ok, cleaned = check_field(key, value)
            if not ok:
                problems.append(f"invalid value for '{key}': {value!r}")
                continue
            observations[key] = cleaned
        if problems:
            raise ValueError("; ".join(problems))

        edited_at = format_timestamp(utc_now())
        with self.transaction():
            self.conn.execute(
                """UPDATE inspections
                   SET observations_json = ?, edited_by = ?, edited_at = ?,
                       notes = COALESCE(?, notes)
                   WHERE id = ?""",
                (
                    json.dumps(observations, ensure_ascii=False),
                    editor.strip(),
                    edited_at,
                    notes,
                    inspection_id,
                ),
            )
        logger.info("Inspection %s edited by %s: %s", inspection_id, editor, sorted(changes))
        return self.get_inspection(inspection_id)

    # -- unresolved queue -----------------------------------------------

    def park_unresolved(self, session_id: str, records: Sequence[ExtractionRecord]) -> None:
        """Keep unresolved records for later manual assignment."""
        with self.transaction():
            self.conn.executemany(
                "INSERT INTO unresolved_extractions(session_id, payload_json) VALUES (?, ?)",
                [(session_id, json.dumps(r.to_payload(), ensure_ascii=False)) for r in records],
            )

    def _unresolved_rows(self, session_id: str) -> list[sqlite3.Row]:
        return self.conn.execute(
            """SELECT unresolved_id, payload_json FROM unresolved_extractions
               WHERE session_id = ? ORDER BY unresolved_id""",
            (session_id,),
        ).fetchall()

    def get_unresolved(self, session_id: str) -> list[ExtractionRecord]:
        return [
            ExtractionRecord.model_validate(json.loads(row["payload_json"]))
            for row in self._unresolved_rows(session_id)
        ]

    def pop_unresolved(self, session_id: str, index: int) -> ExtractionRecord | None:
        """Remove and return the *index*-th parked record of a session."""
        rows = self._unresolved_rows(session_id)
        if not 0 <= index < len(rows):
            return None
        row = rows[index]
        with self.transaction():
            self.conn.execute(
                "DELETE FROM unresolved_extractions WHERE unresolved_id = ?",
                (row["unresolved_id"],),
            )
        return ExtractionRecord.model_validate(json.loads(row["payload_json"]))

    def get_unresolved_sessions(self) -> dict[str, int]:
        """Return session id -> count of parked records."""
        rows = self.conn.execute(
            """SELECT session_id, COUNT(*) AS cnt FROM unresolved_extractions
               GROUP BY session_id ORDER BY MIN(unresolved_id)"""
        ).fetchall()
        return {row["session_id"]: row["cnt"] for row in rows}

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.close()
