"""Registry of run records keyed by entity name."""

from __future__ import annotations

import threading
from collections.abc import Iterator

from flakescope.core.log import logger
from flakescope.history.record import (
    FLAKY_STATUS_CHANGES,
    MAX_LATEST_RUNS,
    RunRecord,
)


class HistoryRegistry:
    """Holds one RunRecord per tracked test or build.

    The registry lock only protects the name mapping; records carry
    their own locks, so work on different entities never contends.
    Owned by the hosting service and passed to callers explicitly.
    """

    def __init__(
        self,
        capacity: int = MAX_LATEST_RUNS,
        flaky_threshold: int = FLAKY_STATUS_CHANGES,
    ):
        self.capacity = capacity
        self.flaky_threshold = flaky_threshold
        self._records: dict[str, RunRecord] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config) -> HistoryRegistry:
        """Create a registry using a HistoryConfig section."""
        return cls(
            capacity=config.capacity,
            flaky_threshold=config.flaky_threshold,
        )

    def get_or_create(self, name: str) -> RunRecord:
        """Return the record for name, creating it on first sight."""
        record = self._records.get(name)
        if record is not None:
            return record

        with self._lock:
            record = self._records.get(name)
            if record is None:
                record = RunRecord(
                    name,
                    capacity=self.capacity,
                    flaky_threshold=self.flaky_threshold,
                )
                self._records[name] = record
                created = True
            else:
                created = False

        if created:
            logger.trace("Tracking new entity", entity=name)
        return record

    def get(self, name: str) -> RunRecord | None:
        return self._records.get(name)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._records)

    def records(self) -> list[RunRecord]:
        """All records, sorted by name."""
        with self._lock:
            return [self._records[n] for n in sorted(self._records)]

    def __contains__(self, name: str) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[RunRecord]:
        return iter(self.records())


__all__ = ["HistoryRegistry"]
