"""Push completed test and build occurrences into a history registry."""

from __future__ import annotations

import threading
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

from flakescope.core.log import logger
from flakescope.history.identity import RunIdentity, decode
from flakescope.history.outcome import OutcomeCode
from flakescope.history.registry import HistoryRegistry

STATUS_SUCCESS = "SUCCESS"
STATUS_FAILURE = "FAILURE"


class TestOccurrence(BaseModel):
    """One completed test execution as reported by the CI server."""

    __test__ = False  # not a pytest test class

    kind: Literal["test"] = "test"
    name: str = Field(description="Full test name")
    id: str = Field(
        description='Composite id, e.g. "id:56,build:(id:1234)"'
    )
    status: str = Field(default=STATUS_SUCCESS)
    muted: bool = False
    ignored: bool = False
    duration: int | None = Field(
        default=None, description="Duration in milliseconds"
    )

    @property
    def is_failed(self) -> bool:
        return self.status == STATUS_FAILURE

    def outcome(self) -> OutcomeCode:
        """Muted or ignored failures are recorded as MUTED_FAILURE."""
        if not self.is_failed:
            return OutcomeCode.OK
        if self.muted or self.ignored:
            return OutcomeCode.MUTED_FAILURE
        return OutcomeCode.FAILURE


class BuildOccurrence(BaseModel):
    """One finished build of a suite."""

    kind: Literal["build"] = "build"
    name: str = Field(description="Suite (build type) name")
    id: int = Field(description="Build id")
    status: str = Field(default=STATUS_SUCCESS)

    @property
    def is_success(self) -> bool:
        return self.status == STATUS_SUCCESS


class CriticalFailure(BaseModel):
    """A build found to have failed without producing results."""

    kind: Literal["critical"] = "critical"
    name: str = Field(description="Suite (build type) name")
    build_id: int


Occurrence = Annotated[
    TestOccurrence | BuildOccurrence | CriticalFailure,
    Field(discriminator="kind"),
]

occurrence_adapter = TypeAdapter(Occurrence)


class IngestStats(BaseModel):
    accepted: int = 0
    skipped: int = 0


class Ingestor:
    """Routes occurrences to the RunRecord of the entity they belong to.

    Occurrences whose id cannot be decoded are logged and dropped;
    one bad record never stops ingestion.
    """

    def __init__(self, registry: HistoryRegistry):
        self.registry = registry
        self._stats = IngestStats()
        self._stats_lock = threading.Lock()

    @property
    def stats(self) -> IngestStats:
        with self._stats_lock:
            return self._stats.model_copy()

    def _count(self, accepted: bool) -> bool:
        with self._stats_lock:
            if accepted:
                self._stats.accepted += 1
            else:
                self._stats.skipped += 1
        return accepted

    def add_test_occurrence(self, occurrence: TestOccurrence) -> bool:
        """Record a test occurrence.

        Returns:
            False if the occurrence id was malformed and skipped
        """
        identity = decode(occurrence.id)
        if identity is None:
            logger.warn(
                "Unable to parse test occurrence id, skipping",
                test=occurrence.name,
                occurrence_id=occurrence.id,
            )
            return self._count(False)

        record = self.registry.get_or_create(occurrence.name)
        record.record_test_outcome(
            identity, occurrence.outcome(), occurrence.duration
        )
        return self._count(True)

    def add_build(self, build: BuildOccurrence) -> bool:
        record = self.registry.get_or_create(build.name)
        record.record_build_outcome(
            RunIdentity.for_build(build.id), build.is_success
        )
        return self._count(True)

    def mark_critical_failure(self, failure: CriticalFailure) -> bool:
        record = self.registry.get_or_create(failure.name)
        record.mark_critical_failure(failure.build_id)
        logger.debug(
            "Build marked as critical failure",
            suite=failure.name,
            build_id=failure.build_id,
        )
        return self._count(True)

    def ingest(
        self, occurrence: TestOccurrence | BuildOccurrence | CriticalFailure
    ) -> bool:
        """Dispatch any occurrence kind to its handler."""
        if isinstance(occurrence, TestOccurrence):
            return self.add_test_occurrence(occurrence)
        if isinstance(occurrence, BuildOccurrence):
            return self.add_build(occurrence)
        if isinstance(occurrence, CriticalFailure):
            return self.mark_critical_failure(occurrence)
        raise TypeError(f"Unsupported occurrence: {occurrence!r}")


__all__ = [
    "TestOccurrence",
    "BuildOccurrence",
    "CriticalFailure",
    "Occurrence",
    "occurrence_adapter",
    "IngestStats",
    "Ingestor",
]
