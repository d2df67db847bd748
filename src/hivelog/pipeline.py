"""End-to-end ingest: model response -> validated records -> inspection log.

Stages:
  1. salvage    - load_candidates() turns the response text into objects
                  (EmptyExtraction / MalformedExtraction are batch failures)
  2. validate   - validate_candidates() keeps records with a hive reference
  3. reconcile  - ReconciliationEngine.reconcile() writes matched inspections
  4. park       - unresolved records are kept by the store, when it can, for
                  a later manual assignment
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from hivelog.errors import HiveNotFoundError
from hivelog.extraction.salvage import load_candidates
from hivelog.extraction.validator import ValidationReport, validate_candidates
from hivelog.extraction.webhook import candidates_from_webhook
from hivelog.hives.registry import HiveRegistry
from hivelog.models import InspectionRecord
from hivelog.reconcile import ReconciliationEngine, ReconciliationResult
from hivelog.store import InspectionStore, UnresolvedQueue

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """What one ingest call produced."""

    session_id: str
    validation: ValidationReport
    reconciliation: ReconciliationResult


def new_session_id() -> str:
    return str(uuid.uuid4())


class InspectionPipeline:
    """Runs the salvage, validate, reconcile stages against one store.

    Usage:
        pipeline = InspectionPipeline(db)
        result = pipeline.ingest_text(model_response)
        for record in result.reconciliation.unresolved:
            ...
    """

    def __init__(self, store: InspectionStore, engine: ReconciliationEngine | None = None) -> None:
        self.store = store
        self.engine = engine or ReconciliationEngine(store)

    def ingest_candidates(self, candidates: list[dict], session_id: str | None = None) -> IngestResult:
        """Validate and reconcile already-decoded candidate objects."""
        session_id = session_id or new_session_id()
        report = validate_candidates(candidates)
        # Matched inspections and parked records land together or not at all.
        with self.store.transaction():
            reconciliation = self.engine.reconcile(session_id, report.records)
            if reconciliation.unresolved and isinstance(self.store, UnresolvedQueue):
                self.store.park_unresolved(session_id, reconciliation.unresolved)

        return IngestResult(session_id=session_id, validation=report, reconciliation=reconciliation)

    def ingest_text(self, response: str, session_id: str | None = None) -> IngestResult:
        """Ingest a raw language-model response.

        Raises:
            EmptyExtraction: Nothing to extract.
            MalformedExtraction: Not JSON even after repair.
        """
        return self.ingest_candidates(load_candidates(response), session_id)

    def ingest_webhook(self, payload: dict, session_id: str | None = None) -> IngestResult:
        """Ingest the structured data of a voice-agent webhook payload.

        Raises:
            WebhookPayloadError: The payload lacks message/analysis.
        """
        return self.ingest_candidates(candidates_from_webhook(payload), session_id)

    def assign_parked(self, session_id: str, index: int, hive_id: str) -> InspectionRecord | None:
        """Assign the *index*-th parked record of a session to a hive.

        Returns:
            The confirmed inspection, or None if there is no such record.

        Raises:
            HiveNotFoundError: If *hive_id* is not an active hive.
            TypeError: If the store cannot park unresolved records.
        """
        if not isinstance(self.store, UnresolvedQueue):
            raise TypeError(f"{type(self.store).__name__} does not keep unresolved records")

        registry = HiveRegistry.from_store(self.store)
        if hive_id not in registry:
            raise HiveNotFoundError(hive_id)

        parked = self.store.get_unresolved(session_id)
        if not 0 <= index < len(parked):
            return None

        with self.store.transaction():
            created = self.engine.assign_manually(session_id, [(parked[index], hive_id)], registry)
            self.store.pop_unresolved(session_id, index)
        return created[0] if created else None
