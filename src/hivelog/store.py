"""Store capability used by the reconciliation engine.

The engine never reaches for global state; it is handed a store that can
  - ``load()`` the active hives in registration order,
  - ``append()`` inspection records to the log,
  - ``project_latest()`` the per-hive latest-inspection pointer,
  - run those writes inside one all-or-nothing ``transaction()``.

``MemoryStore`` implements it in memory for tests and embedding;
``hivelog.database.Database`` implements it on SQLite.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from collections.abc import Iterator, Sequence
from contextlib import AbstractContextManager, contextmanager
from typing import Protocol, runtime_checkable

from hivelog.extraction.schemas import ExtractionRecord
from hivelog.models import Hive, InspectionRecord, utc_now

logger = logging.getLogger(__name__)


class InspectionStore(Protocol):
    """Persistence capability consumed by ReconciliationEngine."""

    def load(self) -> list[Hive]:
        """Return active hives in registration order."""
        ...

    def append(self, records: Sequence[InspectionRecord]) -> None:
        """Append inspection records to the log."""
        ...

    def project_latest(self, hive_id: str, inspection: InspectionRecord) -> bool:
        """Point the hive at *inspection* unless it already has a newer one.

        Returns True when the pointer moved.
        """
        ...

    def transaction(self) -> AbstractContextManager[None]:
        """Group writes so they all land or none do."""
        ...


@runtime_checkable
class UnresolvedQueue(Protocol):
    """Optional capability: park unresolved records until manually assigned."""

    def park_unresolved(self, session_id: str, records: Sequence[ExtractionRecord]) -> None: ...

    def get_unresolved(self, session_id: str) -> list[ExtractionRecord]: ...

    def pop_unresolved(self, session_id: str, index: int) -> ExtractionRecord | None: ...


class MemoryStore:
    """In-memory InspectionStore.

    Usage:
        store = MemoryStore()
        main = store.add_hive("Main Hive")
        engine = ReconciliationEngine(store)
    """

    def __init__(self, hives: Sequence[Hive] = ()) -> None:
        self._hives: list[Hive] = list(hives)
        self._inspections: list[InspectionRecord] = []
        self._unresolved: dict[str, list[ExtractionRecord]] = {}

    # -- registry -------------------------------------------------------

    def add_hive(self, name: str, **fields: object) -> Hive:
        hive = Hive(id=str(uuid.uuid4()), name=name, date_added=utc_now().date().isoformat(), **fields)
        self._hives.append(hive)
        return hive

    def get_hive(self, hive_id: str) -> Hive | None:
        return next((h for h in self._hives if h.id == hive_id), None)

    def load(self) -> list[Hive]:
        # Copies: the caller's snapshot must not see later projection writes.
        return [dataclasses.replace(h) for h in self._hives if h.is_active]

    # -- inspection log -------------------------------------------------

    @property
    def inspections(self) -> list[InspectionRecord]:
        return list(self._inspections)

    def append(self, records: Sequence[InspectionRecord]) -> None:
        self._inspections.extend(records)

    def project_latest(self, hive_id: str, inspection: InspectionRecord) -> bool:
        hive = self.get_hive(hive_id)
        if hive is None:
            logger.warning("Projection skipped: hive %s not in store", hive_id)
            return False
        if hive.last_inspected_at is not None and inspection.timestamp < hive.last_inspected_at:
            return False
        hive.latest_inspection_id = inspection.id
        hive.last_inspected_at = inspection.timestamp
        return True

    def get_latest_inspection(self, hive_id: str) -> InspectionRecord | None:
        hive = self.get_hive(hive_id)
        if hive is None or hive.latest_inspection_id is None:
            return None
        return next((i for i in self._inspections if i.id == hive.latest_inspection_id), None)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        hives = [dataclasses.replace(h) for h in self._hives]
        inspection_count = len(self._inspections)
        unresolved = {sid: list(records) for sid, records in self._unresolved.items()}
        try:
            yield
        except BaseException:
            self._hives = hives
            del self._inspections[inspection_count:]
            self._unresolved = unresolved
            raise

    # -- unresolved queue -----------------------------------------------

    def park_unresolved(self, session_id: str, records: Sequence[ExtractionRecord]) -> None:
        self._unresolved.setdefault(session_id, []).extend(records)

    def get_unresolved(self, session_id: str) -> list[ExtractionRecord]:
        return list(self._unresolved.get(session_id, []))

    def pop_unresolved(self, session_id: str, index: int) -> ExtractionRecord | None:
        pending = self._unresolved.get(session_id, [])
        if 0 <= index < len(pending):
            return pending.pop(index)
        return None
