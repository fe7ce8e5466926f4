"""Tests for the history registry."""

import threading

from flakescope.core.config import HistoryConfig
from flakescope.history.registry import HistoryRegistry


def test_get_or_create_returns_same_record():
    registry = HistoryRegistry()

    first = registry.get_or_create("test.A")
    second = registry.get_or_create("test.A")

    assert first is second
    assert first.name == "test.A"
    assert len(registry) == 1
    assert "test.A" in registry


def test_get_unknown_returns_none():
    assert HistoryRegistry().get("missing") is None


def test_records_sorted_by_name():
    registry = HistoryRegistry()
    for name in ["b", "c", "a"]:
        registry.get_or_create(name)

    assert registry.names() == ["a", "b", "c"]
    assert [r.name for r in registry] == ["a", "b", "c"]


def test_records_use_registry_settings():
    registry = HistoryRegistry.from_config(
        HistoryConfig(capacity=5, flaky_threshold=2)
    )

    record = registry.get_or_create("test.A")

    assert record.capacity == 5
    assert registry.flaky_threshold == 2


def test_concurrent_get_or_create_creates_one_record():
    registry = HistoryRegistry()
    barrier = threading.Barrier(8)
    seen = []

    def worker():
        barrier.wait()
        seen.append(registry.get_or_create("test.Shared"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(registry) == 1
    assert all(record is seen[0] for record in seen)
