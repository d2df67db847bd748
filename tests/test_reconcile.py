"""Tests for ReconciliationEngine against the in-memory store.

Covers the K + unresolved = N accounting, field preservation, the
latest-inspection projection across and within batches, all-or-nothing
commits, and manual assignment.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from hivelog.extraction.schemas import ExtractionRecord, YesNo
from hivelog.hives.registry import HiveRegistry
from hivelog.models import InspectionSource
from hivelog.reconcile import ReconciliationEngine
from hivelog.store import MemoryStore


def _record(hive_ref: str, **fields) -> ExtractionRecord:
    return ExtractionRecord.model_validate({"bikupa": hive_ref, **fields})


def _hive(store: MemoryStore, name: str):
    return next(h for h in store.load() if h.name == name)


class FailingProjectionStore(MemoryStore):
    """MemoryStore whose projection write fails after the log append."""

    def project_latest(self, hive_id, inspection):
        raise OSError("disk full")


@pytest.fixture
def engine(memory_store, clock):
    return ReconciliationEngine(memory_store, clock=clock)


class TestReconcile:
    def test_resolved_plus_unresolved_equals_batch(self, engine):
        records = [
            _record("main hive", binasHälsa=4),
            _record("bikupa 2"),
            _record("bikupa 9"),
            _record("south hive"),
        ]
        result = engine.reconcile("session-1", records)
        assert len(result.inspections) == 2
        assert len(result.unresolved) == 2
        assert len(result.inspections) + len(result.unresolved) == len(records)

    def test_unresolved_records_returned_intact(self, engine):
        record = _record("bikupa 9", binasHälsa=3, finnsDrottning="nej", väder="rain")
        result = engine.reconcile("session-1", [record])
        assert result.inspections == []
        assert result.unresolved == [record]
        assert result.unresolved[0] is record
        assert result.unresolved[0].to_payload() == {
            "bikupa": "bikupa 9",
            "binasHälsa": 3,
            "finnsDrottning": "nej",
            "väder": "rain",
        }

    def test_inspection_fields(self, engine, memory_store, clock):
        result = engine.reconcile(
            "session-1",
            [_record("Main Hive", binasHälsa=4, finnsDrottning="ja", antalSkattlådar=0, extractionConfidence=0.9)],
        )
        inspection = result.inspections[0]
        main = _hive(memory_store, "Main Hive")
        assert inspection.hive_id == main.id
        assert inspection.hive_name == "Main Hive"
        assert inspection.timestamp == clock.now
        assert inspection.inspection_date == clock.now.date()
        assert inspection.source is InspectionSource.AI
        assert inspection.confirmed is False
        assert inspection.recording_session_id == "session-1"
        assert inspection.health == 4
        assert inspection.queen_present is YesNo.YES
        assert inspection.super_count == 0
        assert inspection.extraction_confidence == 0.9
        assert inspection.population is None

    def test_inspections_appended_to_store(self, engine, memory_store):
        result = engine.reconcile("session-1", [_record("main hive"), _record("bikupa 3")])
        assert [i.id for i in memory_store.inspections] == [i.id for i in result.inspections]

    def test_batch_shares_one_timestamp(self, engine):
        result = engine.reconcile("session-1", [_record("bikupa 1"), _record("bikupa 2")])
        assert len({i.timestamp for i in result.inspections}) == 1

    def test_ids_are_unique(self, engine):
        result = engine.reconcile("session-1", [_record("bikupa 1"), _record("bikupa 1")])
        assert result.inspections[0].id != result.inspections[1].id

    def test_empty_batch(self, engine, memory_store):
        result = engine.reconcile("session-1", [])
        assert result.inspections == []
        assert result.unresolved == []
        assert memory_store.inspections == []

    def test_inactive_hive_not_matched(self, memory_store, clock):
        memory_store.get_hive(_hive(memory_store, "North Hive").id).is_active = False
        engine = ReconciliationEngine(memory_store, clock=clock)
        result = engine.reconcile("session-1", [_record("north hive"), _record("bikupa 2")])
        assert [r.hive_ref for r in result.unresolved] == ["north hive"]
        assert result.inspections[0].hive_name == "East Hive"

    def test_explicit_registry_snapshot(self, engine, memory_store):
        east = _hive(memory_store, "East Hive")
        result = engine.reconcile("session-1", [_record("bikupa 1")], registry=HiveRegistry([east]))
        assert result.inspections[0].hive_id == east.id


class TestProjection:
    def test_points_at_new_inspection(self, engine, memory_store):
        result = engine.reconcile("session-1", [_record("main hive")])
        main = memory_store.get_hive(result.inspections[0].hive_id)
        assert main.latest_inspection_id == result.inspections[0].id
        assert memory_store.get_latest_inspection(main.id) == result.inspections[0]

    def test_later_batch_wins(self, engine, memory_store, clock):
        first = engine.reconcile("session-1", [_record("main hive")]).inspections[0]
        clock.advance(hours=1)
        second = engine.reconcile("session-2", [_record("main hive")]).inspections[0]
        assert memory_store.get_hive(first.hive_id).latest_inspection_id == second.id

    def test_older_batch_arriving_late_does_not_win(self, engine, memory_store, clock):
        clock.advance(hours=1)
        newer = engine.reconcile("session-2", [_record("main hive")]).inspections[0]
        clock.now = clock.now - timedelta(hours=2)
        older = engine.reconcile("session-1", [_record("main hive")]).inspections[0]
        hive = memory_store.get_hive(newer.hive_id)
        assert hive.latest_inspection_id == newer.id
        assert hive.last_inspected_at == newer.timestamp
        assert older in memory_store.inspections

    def test_same_hive_twice_in_batch_last_wins(self, engine, memory_store):
        result = engine.reconcile(
            "session-1", [_record("main hive", foder=1), _record("bikupa 1", foder=5)]
        )
        hive = memory_store.get_hive(result.inspections[0].hive_id)
        assert hive.latest_inspection_id == result.inspections[1].id

    def test_untouched_hives_keep_pointer(self, engine, memory_store):
        engine.reconcile("session-1", [_record("main hive")])
        assert _hive(memory_store, "North Hive").latest_inspection_id is None

    def test_caller_snapshot_not_mutated(self, engine, memory_store):
        registry = HiveRegistry.from_store(memory_store)
        engine.reconcile("session-1", [_record("main hive")], registry=registry)
        assert registry.hives[0].latest_inspection_id is None


class TestAtomicCommit:
    def test_projection_failure_rolls_back_append(self, clock):
        store = FailingProjectionStore()
        store.add_hive("Main Hive")
        engine = ReconciliationEngine(store, clock=clock)
        with pytest.raises(OSError, match="disk full"):
            engine.reconcile("session-1", [_record("main hive"), _record("bikupa 1")])
        assert store.inspections == []
        assert store.load()[0].latest_inspection_id is None


class TestManualAssignment:
    def test_assignment_is_confirmed(self, engine, memory_store):
        north = _hive(memory_store, "North Hive")
        record = _record("the far one", binasHälsa=2)
        created = engine.assign_manually("session-1", [(record, north.id)])
        assert len(created) == 1
        assert created[0].confirmed is True
        assert created[0].hive_id == north.id
        assert created[0].health == 2
        assert memory_store.get_hive(north.id).latest_inspection_id == created[0].id

    def test_unknown_hive_dropped(self, engine, memory_store):
        main = _hive(memory_store, "Main Hive")
        created = engine.assign_manually(
            "session-1", [(_record("a"), "no-such-hive"), (_record("b"), main.id)]
        )
        assert [i.hive_id for i in created] == [main.id]
        assert len(memory_store.inspections) == 1

    def test_reference_text_is_not_matched(self, engine, memory_store):
        east = _hive(memory_store, "East Hive")
        created = engine.assign_manually("session-1", [(_record("main hive"), east.id)])
        assert created[0].hive_name == "East Hive"
