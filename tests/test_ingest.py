"""Tests for occurrence ingestion."""

import pytest

from flakescope.history.identity import RunIdentity
from flakescope.history.outcome import OutcomeCode
from flakescope.history.registry import HistoryRegistry
from flakescope.ingest import (
    BuildOccurrence,
    CriticalFailure,
    Ingestor,
    TestOccurrence,
    occurrence_adapter,
)


@pytest.fixture
def ingestor():
    return Ingestor(HistoryRegistry())


def test_test_occurrence_recorded(ingestor):
    accepted = ingestor.add_test_occurrence(TestOccurrence(
        name="org.example.FooTest.testBar",
        id="id:56,build:(id:1234)",
        status="FAILURE",
        duration=120,
    ))

    record = ingestor.registry.get("org.example.FooTest.testBar")
    assert accepted
    assert record.window_snapshot() == [
        (RunIdentity(1234, 56), OutcomeCode.FAILURE)
    ]
    assert record.failures == 1
    assert record.total_duration_ms == 120


@pytest.mark.parametrize("muted,ignored", [(True, False), (False, True)])
def test_muted_or_ignored_failure_recorded_as_muted(ingestor, muted, ignored):
    occurrence = TestOccurrence(
        name="t", id="id:1,build:(id:2)", status="FAILURE",
        muted=muted, ignored=ignored,
    )

    assert occurrence.outcome() is OutcomeCode.MUTED_FAILURE
    ingestor.add_test_occurrence(occurrence)
    assert ingestor.registry.get("t").failures == 1


def test_passed_test_is_ok():
    occurrence = TestOccurrence(name="t", id="id:1,build:(id:2)", muted=True)

    assert occurrence.outcome() is OutcomeCode.OK


def test_malformed_id_skipped(ingestor):
    """A bad id is dropped without creating the entity or raising."""
    accepted = ingestor.add_test_occurrence(
        TestOccurrence(name="t", id="garbage", status="FAILURE")
    )

    assert not accepted
    assert "t" not in ingestor.registry
    assert ingestor.stats.skipped == 1
    assert ingestor.stats.accepted == 0


def test_ingestion_continues_after_malformed_id(ingestor):
    events = [
        TestOccurrence(name="t", id="id:1,build:(id:1)"),
        TestOccurrence(name="t", id="id:x,build:(id:2)"),
        TestOccurrence(name="t", id="id:1,build:(id:" + "9" * 5000 + ")"),
        TestOccurrence(name="t", id="id:1,build:(id:3)"),
    ]

    results = [ingestor.ingest(e) for e in events]

    assert results == [True, False, False, True]
    assert ingestor.registry.get("t").runs == 2


def test_build_and_critical_failure(ingestor):
    ingestor.ingest(BuildOccurrence(name="Suite", id=10, status="SUCCESS"))
    ingestor.ingest(BuildOccurrence(name="Suite", id=11, status="FAILURE"))
    ingestor.ingest(CriticalFailure(name="Suite", build_id=12))

    record = ingestor.registry.get("Suite")
    assert record.latest_results() == [
        OutcomeCode.OK,
        OutcomeCode.FAILURE,
        OutcomeCode.CRITICAL_FAILURE,
    ]
    assert record.runs == 2
    assert record.failures == 1
    assert ingestor.stats.accepted == 3


def test_occurrence_adapter_dispatches_on_kind():
    test = occurrence_adapter.validate_json(
        '{"kind": "test", "name": "t", "id": "id:1,build:(id:2)"}'
    )
    build = occurrence_adapter.validate_json(
        '{"kind": "build", "name": "s", "id": 5, "status": "FAILURE"}'
    )
    critical = occurrence_adapter.validate_json(
        '{"kind": "critical", "name": "s", "build_id": 6}'
    )

    assert isinstance(test, TestOccurrence)
    assert isinstance(build, BuildOccurrence) and not build.is_success
    assert isinstance(critical, CriticalFailure)


def test_ingest_rejects_unknown_objects(ingestor):
    with pytest.raises(TypeError):
        ingestor.ingest({"kind": "test"})
