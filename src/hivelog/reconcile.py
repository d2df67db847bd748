"""Reconciliation of validated extraction records into the inspection log.

``ReconciliationEngine.reconcile`` resolves each record's hive reference,
materializes matches as unconfirmed AI inspections, and hands the misses
back untouched for a human to assign. ``assign_manually`` materializes
those human choices as confirmed inspections.

Both paths share one batch timestamp per call and commit in a single store
transaction: the inspection log append and the latest-inspection
projection land together or not at all. Storage errors propagate as-is.

When several records in one batch target the same hive they share the
batch timestamp, so the projection points at the last one in input order.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from hivelog.extraction.schemas import ExtractionRecord
from hivelog.hives.registry import HiveRegistry
from hivelog.hives.resolver import match_hive
from hivelog.models import Hive, InspectionRecord, InspectionSource, utc_now
from hivelog.store import InspectionStore

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    """Inspections created by a batch and the records that matched no hive.

    ``len(inspections) + len(unresolved)`` always equals the batch size.
    """

    inspections: list[InspectionRecord] = field(default_factory=list)
    unresolved: list[ExtractionRecord] = field(default_factory=list)


def _new_id() -> str:
    return str(uuid.uuid4())


class ReconciliationEngine:
    """Materializes extraction records as inspections against a store.

    Usage:
        engine = ReconciliationEngine(store)
        result = engine.reconcile(session_id, records)
        for record in result.unresolved:
            ...  # ask a human, then:
        engine.assign_manually(session_id, [(record, hive_id)])

    Args:
        store: InspectionStore capability (SQLite Database or MemoryStore).
        clock: Returns the batch timestamp (aware UTC datetime).
        id_factory: Returns a fresh inspection id.
    """

    def __init__(
        self,
        store: InspectionStore,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._store = store
        self._clock = clock
        self._id_factory = id_factory

    def _snapshot(self, registry: HiveRegistry | None) -> HiveRegistry:
        return registry if registry is not None else HiveRegistry.from_store(self._store)

    def _materialize(
        self,
        record: ExtractionRecord,
        hive: Hive,
        session_id: str,
        timestamp: datetime,
        confirmed: bool,
    ) -> InspectionRecord:
        return InspectionRecord(
            id=self._id_factory(),
            hive_id=hive.id,
            hive_name=hive.name,
            inspection_date=timestamp.date(),
            timestamp=timestamp,
            source=InspectionSource.AI,
            recording_session_id=session_id,
            confirmed=confirmed,
            **record.observations(),
        )

    def _commit(self, inspections: list[InspectionRecord]) -> None:
        if not inspections:
            return

        latest_by_hive: dict[str, InspectionRecord] = {}
        for inspection in inspections:
            latest_by_hive[inspection.hive_id] = inspection

        with self._store.transaction():
            self._store.append(inspections)
            for hive_id, inspection in latest_by_hive.items():
                self._store.project_latest(hive_id, inspection)

    def reconcile(
        self,
        session_id: str,
        records: Sequence[ExtractionRecord],
        registry: HiveRegistry | None = None,
    ) -> ReconciliationResult:
        """Resolve and materialize a batch of validated extraction records.

        Args:
            session_id: Recording session the records were extracted from.
            records: Validated records, processed in order.
            registry: Hive snapshot to resolve against; loaded from the
                store when omitted.

        Returns:
            ReconciliationResult with the created inspections and the
            unresolved records (unchanged, every extracted field intact).
        """
        hives = self._snapshot(registry).hives
        timestamp = self._clock()
        result = ReconciliationResult()

        for record in records:
            match = match_hive(record.hive_ref, hives)
            if match is None:
                logger.info("Unresolved hive reference %r (session %s)", record.hive_ref, session_id)
                result.unresolved.append(record)
                continue
            logger.debug(
                "Resolved %r -> %s (%s rule)", record.hive_ref, match.hive.name, match.rule
            )
            result.inspections.append(
                self._materialize(record, match.hive, session_id, timestamp, confirmed=False)
            )

        self._commit(result.inspections)
        logger.info(
            "Session %s reconciled: %d inspections, %d unresolved",
            session_id,
            len(result.inspections),
            len(result.unresolved),
        )
        return result

    def assign_manually(
        self,
        session_id: str,
        assignments: Sequence[tuple[ExtractionRecord, str]],
        registry: HiveRegistry | None = None,
    ) -> list[InspectionRecord]:
        """Materialize human-chosen (record, hive id) pairs as confirmed inspections.

        Pairs naming a hive id absent from the registry are dropped; callers
        validate ids against a fresh registry before calling.
        """
        snapshot = self._snapshot(registry)
        timestamp = self._clock()
        created: list[InspectionRecord] = []

        for record, hive_id in assignments:
            hive = snapshot.get(hive_id)
            if hive is None:
                logger.debug("Dropping manual assignment to unknown hive %s", hive_id)
                continue
            created.append(self._materialize(record, hive, session_id, timestamp, confirmed=True))

        self._commit(created)
        logger.info("Session %s: %d manual assignments committed", session_id, len(created))
        return created
