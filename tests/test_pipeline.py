"""End-to-end tests for InspectionPipeline: text in, inspections out."""

from __future__ import annotations

import sqlite3

import pytest

from hivelog.database import Database
from hivelog.errors import EmptyExtraction, HiveNotFoundError, MalformedExtraction
from hivelog.pipeline import InspectionPipeline
from hivelog.reconcile import ReconciliationEngine
from hivelog.store import MemoryStore

RESPONSE = """```json
[
  {"bikupa": "Main Hive", "binasHälsa": 4, "finnsDrottning": "ja", "extractionConfidence": 0.92},
  {"bikupa": "bikupa 2", "foder": 7, "antalSkattlådar": 2},
  {"bikupa": "the one by the shed", "planeradÅtgärd": "Add a "super" box"},
  {"binasHälsa": 3}
]
```"""


class LogOnlyStore:
    """InspectionStore without an unresolved queue."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    def load(self):
        return self._store.load()

    def append(self, records):
        self._store.append(records)

    def project_latest(self, hive_id, inspection):
        return self._store.project_latest(hive_id, inspection)

    def transaction(self):
        return self._store.transaction()


class FailingParkStore(MemoryStore):
    def park_unresolved(self, session_id, records):
        raise OSError("disk full")


class FailingPopStore(MemoryStore):
    def pop_unresolved(self, session_id, index):
        raise OSError("disk full")


def _store_with_hives(store_cls):
    store = store_cls()
    for name in ("Main Hive", "North Hive", "East Hive"):
        store.add_hive(name)
    return store


@pytest.fixture
def pipeline(memory_store, clock):
    return InspectionPipeline(memory_store, ReconciliationEngine(memory_store, clock=clock))


class TestIngestText:
    def test_full_batch(self, pipeline, memory_store):
        result = pipeline.ingest_text(RESPONSE, session_id="session-1")
        assert result.session_id == "session-1"
        assert result.validation.rejected_count == 1
        assert [i.hive_name for i in result.reconciliation.inspections] == ["Main Hive", "North Hive"]
        assert [r.hive_ref for r in result.reconciliation.unresolved] == ["the one by the shed"]
        assert len(memory_store.inspections) == 2

    def test_invalid_field_dropped_record_kept(self, pipeline):
        result = pipeline.ingest_text(RESPONSE)
        north = result.reconciliation.inspections[1]
        assert north.feed_status is None
        assert north.super_count == 2

    def test_repaired_text_survives(self, pipeline):
        result = pipeline.ingest_text(RESPONSE)
        assert result.reconciliation.unresolved[0].next_action == 'Add a "super" box'

    def test_unresolved_parked(self, pipeline, memory_store):
        pipeline.ingest_text(RESPONSE, session_id="session-1")
        parked = memory_store.get_unresolved("session-1")
        assert [r.hive_ref for r in parked] == ["the one by the shed"]

    def test_session_id_generated(self, pipeline):
        result = pipeline.ingest_text('{"bikupa": "Main Hive"}')
        assert result.session_id
        assert result.reconciliation.inspections[0].recording_session_id == result.session_id

    def test_malformed_writes_nothing(self, pipeline, memory_store):
        with pytest.raises(MalformedExtraction):
            pipeline.ingest_text('[{"bikupa": "Main Hive", "binasHälsa": }]')
        assert memory_store.inspections == []

    def test_empty(self, pipeline):
        with pytest.raises(EmptyExtraction):
            pipeline.ingest_text("```json\n[]\n```")


class TestIngestWebhook:
    def test_structured_data_reconciled(self, pipeline):
        payload = {"message": {"analysis": {"structuredData": {"bikupa": "bikupa 3", "varroastatus": 1}}}}
        result = pipeline.ingest_webhook(payload, session_id="call-1")
        assert result.reconciliation.inspections[0].hive_name == "East Hive"
        assert result.reconciliation.inspections[0].mite_status == 1


class TestAssignParked:
    def test_assign_creates_confirmed_inspection(self, pipeline, memory_store):
        pipeline.ingest_text(RESPONSE, session_id="session-1")
        east = memory_store.load()[2]
        inspection = pipeline.assign_parked("session-1", 0, east.id)
        assert inspection.confirmed is True
        assert inspection.hive_id == east.id
        assert inspection.next_action == 'Add a "super" box'
        assert memory_store.get_unresolved("session-1") == []

    def test_bad_index(self, pipeline, memory_store):
        pipeline.ingest_text(RESPONSE, session_id="session-1")
        assert pipeline.assign_parked("session-1", 3, memory_store.load()[0].id) is None
        assert len(memory_store.get_unresolved("session-1")) == 1

    def test_unknown_hive_keeps_record_parked(self, pipeline, memory_store):
        pipeline.ingest_text(RESPONSE, session_id="session-1")
        with pytest.raises(HiveNotFoundError):
            pipeline.assign_parked("session-1", 0, "no-such-hive")
        assert len(memory_store.get_unresolved("session-1")) == 1

    def test_store_without_queue(self, memory_store):
        pipeline = InspectionPipeline(LogOnlyStore(memory_store))
        result = pipeline.ingest_text('{"bikupa": "bikupa 8"}')
        assert len(result.reconciliation.unresolved) == 1
        with pytest.raises(TypeError):
            pipeline.assign_parked(result.session_id, 0, memory_store.load()[0].id)


class TestAtomicIngest:
    def test_parking_failure_rolls_back_inspections(self):
        store = _store_with_hives(FailingParkStore)
        pipeline = InspectionPipeline(store)
        with pytest.raises(OSError, match="disk full"):
            pipeline.ingest_text('[{"bikupa": "main hive"}, {"bikupa": "nowhere"}]', session_id="s1")
        assert store.inspections == []
        assert store.load()[0].latest_inspection_id is None

    def test_pop_failure_rolls_back_assignment(self):
        store = _store_with_hives(FailingPopStore)
        pipeline = InspectionPipeline(store)
        pipeline.ingest_text('[{"bikupa": "main hive"}, {"bikupa": "nowhere"}]', session_id="s1")
        east = store.load()[2]
        with pytest.raises(OSError, match="disk full"):
            pipeline.assign_parked("s1", 0, east.id)
        assert len(store.inspections) == 1
        assert store.load()[2].latest_inspection_id is None
        assert [r.hive_ref for r in store.get_unresolved("s1")] == ["nowhere"]

    def test_parking_failure_rolls_back_database_batch(self, tmp_path):
        class FailingParkDatabase(Database):
            def park_unresolved(self, session_id, records):
                raise sqlite3.OperationalError("database is locked")

        db = FailingParkDatabase(tmp_path / "failing.db")
        try:
            db.add_hive("Main Hive")
            with pytest.raises(sqlite3.OperationalError):
                InspectionPipeline(db).ingest_text('[{"bikupa": "main hive"}, {"bikupa": "nowhere"}]')
            assert db.get_inspection_count() == 0
            assert db.load()[0].latest_inspection_id is None
        finally:
            db.close()
