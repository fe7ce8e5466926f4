"""Per-entity run history: lifetime counters and a bounded window."""

from __future__ import annotations

import bisect
import threading
import time
from typing import TYPE_CHECKING

from pydantic import BaseModel

from flakescope.core.log import logger
from flakescope.history.identity import RunIdentity
from flakescope.history.outcome import OutcomeCode

if TYPE_CHECKING:
    from flakescope.history.template import EventTemplate

MAX_LATEST_RUNS = 50

# More status changes than this within the window marks an entity flaky
FLAKY_STATUS_CHANGES = 6


class RunSummary(BaseModel):
    """Point-in-time snapshot of a RunRecord's statistics."""

    name: str
    runs: int
    failures: int
    window_size: int
    window_failures: int
    window_critical_failures: int
    fail_rate: float
    critical_fail_rate: float
    lifetime_fail_rate: float
    average_duration_ms: int
    last_updated_ms: int
    flaky: bool
    flakiness_report: str | None = None


def _percent_printable(rate: float) -> str:
    """Format a rate as a percentage with one decimal and comma."""
    return f"{rate * 100.0:.1f}".replace(".", ",")


class RunRecord:
    """Run statistics of one test or build.

    Lifetime counters (runs, failures, durations) see every event
    ever recorded. The window holds only the most recent outcomes,
    keyed and sorted by RunIdentity; once it is full, recording a
    new outcome evicts the smallest identity.

    Every method that touches the window holds the record's lock,
    so insert-plus-evict is atomic to concurrent readers.
    """

    def __init__(
        self,
        name: str,
        capacity: int = MAX_LATEST_RUNS,
        flaky_threshold: int = FLAKY_STATUS_CHANGES,
    ):
        """Create an empty record.

        Args:
            name: Key of the tracked test or build
            capacity: Maximum number of outcomes kept in the window
            flaky_threshold: Status changes tolerated before the
                entity is reported flaky
        """
        if capacity < 1:
            raise ValueError(f"Window capacity must be positive: {capacity}")

        self._name = name
        self._capacity = capacity
        self._flaky_threshold = flaky_threshold
        self._lock = threading.RLock()

        self.runs = 0
        self.failures = 0
        self.total_duration_ms = 0
        self.runs_with_duration = 0
        self.last_updated_ms = 0

        self._window: dict[RunIdentity, OutcomeCode] = {}
        self._order: list[RunIdentity] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def lock(self) -> threading.RLock:
        """Lock guarding this record; reentrant."""
        return self._lock

    # ------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------

    def record_test_outcome(
        self,
        identity: RunIdentity,
        code: OutcomeCode,
        duration_ms: int | None = None,
    ) -> None:
        """Record one completed test run.

        FAILURE and MUTED_FAILURE count toward lifetime failures.
        """
        code = self._check_code(code)
        with self._lock:
            evicted = self._insert(identity, code)

            self.runs += 1
            if duration_ms is not None:
                self.total_duration_ms += duration_ms
                self.runs_with_duration += 1
            if code.is_failure:
                self.failures += 1

            self.last_updated_ms = self._now_ms()

        self._log_evicted(evicted)

    def record_build_outcome(self, identity: RunIdentity, success: bool) -> None:
        """Record one completed build run."""
        code = OutcomeCode.OK if success else OutcomeCode.FAILURE
        with self._lock:
            evicted = self._insert(identity, code)

            self.runs += 1
            if not success:
                self.failures += 1

            self.last_updated_ms = self._now_ms()

        self._log_evicted(evicted)

    def mark_critical_failure(self, container_id: int) -> None:
        """Annotate a build as critically failed.

        Only the window changes: the run was already counted, or
        never ran at all, so lifetime counters are left alone.
        """
        with self._lock:
            evicted = self._insert(
                RunIdentity.for_build(container_id),
                OutcomeCode.CRITICAL_FAILURE,
            )

        self._log_evicted(evicted)

    def _insert(
        self, identity: RunIdentity, code: OutcomeCode
    ) -> list[RunIdentity]:
        """Put an outcome into the window, evicting the oldest if full.

        Caller must hold the lock. Re-recording an identity already
        in the window overwrites its code.

        Returns:
            Identities evicted to make room
        """
        if not isinstance(identity, RunIdentity):
            raise TypeError(f"Expected RunIdentity, got {identity!r}")

        if identity not in self._window:
            bisect.insort(self._order, identity)
        self._window[identity] = code

        evicted = []
        while len(self._order) > self._capacity:
            oldest = self._order.pop(0)
            del self._window[oldest]
            evicted.append(oldest)
        return evicted

    def _log_evicted(self, evicted: list[RunIdentity]) -> None:
        for identity in evicted:
            logger.spew(
                "Evicted run from history window",
                entity=self._name,
                run=str(identity),
            )

    @staticmethod
    def _check_code(code) -> OutcomeCode:
        if not isinstance(code, OutcomeCode):
            raise TypeError(
                f"Only OutcomeCode values can be recorded, got {code!r}"
            )
        return code

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    # ------------------------------------------------------------
    # Window queries
    # ------------------------------------------------------------

    def window_snapshot(self) -> list[tuple[RunIdentity, OutcomeCode]]:
        """Window entries in ascending identity order."""
        with self._lock:
            return [(i, self._window[i]) for i in self._order]

    def latest_results(self) -> list[OutcomeCode]:
        """Window codes in ascending identity order."""
        with self._lock:
            return [self._window[i] for i in self._order]

    def window_size(self) -> int:
        with self._lock:
            return len(self._order)

    def window_failures(self) -> int:
        """Number of window entries that are not OK."""
        with self._lock:
            return sum(
                1 for c in self._window.values() if c != OutcomeCode.OK
            )

    def window_critical_failures(self) -> int:
        with self._lock:
            return sum(
                1 for c in self._window.values()
                if c == OutcomeCode.CRITICAL_FAILURE
            )

    def fail_rate(self) -> float:
        """Share of window runs that did not pass.

        An empty window reads as 1.0 so unknown entities never look
        healthy.
        """
        with self._lock:
            size = len(self._order)
            if size == 0:
                return 1.0
            return self.window_failures() / size

    def critical_fail_rate(self) -> float:
        with self._lock:
            size = len(self._order)
            if size == 0:
                return 1.0
            return self.window_critical_failures() / size

    def lifetime_fail_rate(self) -> float:
        """Failures over runs across all recorded history."""
        with self._lock:
            if self.runs == 0:
                return 1.0
            return self.failures / self.runs

    def average_duration_ms(self) -> int:
        with self._lock:
            if self.runs_with_duration == 0:
                return 0
            return int(self.total_duration_ms / self.runs_with_duration)

    def fail_percent_printable(self) -> str:
        return _percent_printable(self.fail_rate())

    def critical_fail_percent_printable(self) -> str:
        return _percent_printable(self.critical_fail_rate())

    def lifetime_fail_percent_printable(self) -> str:
        return _percent_printable(self.lifetime_fail_rate())

    def status_changes(self) -> int:
        """Count adjacent window entries whose codes differ."""
        with self._lock:
            codes = [self._window[i] for i in self._order]
        return sum(1 for prev, cur in zip(codes, codes[1:]) if prev != cur)

    def flakiness_report(self) -> str | None:
        """Describe the entity's oscillation if it looks flaky.

        Fail rate alone cannot tell "always failing" from
        "alternating", so flakiness is measured as the number of
        status changes within the window.

        Returns:
            Report text, or None if the entity is not flaky
        """
        with self._lock:
            changes = self.status_changes()
            size = len(self._order)

        if changes <= self._flaky_threshold:
            return None

        return (
            "Test seems to be flaky: "
            f"change status [{changes}/{size}]"
        )

    def is_flaky(self) -> bool:
        return self.flakiness_report() is not None

    def detect_template(self, template: EventTemplate) -> RunIdentity | None:
        """Locate the anchor run of template in this record's window."""
        from flakescope.history.matcher import detect

        return detect(self, template)

    def summary(self) -> RunSummary:
        """Consistent snapshot of counters and window statistics."""
        with self._lock:
            report = self.flakiness_report()
            return RunSummary(
                name=self._name,
                runs=self.runs,
                failures=self.failures,
                window_size=len(self._order),
                window_failures=self.window_failures(),
                window_critical_failures=self.window_critical_failures(),
                fail_rate=self.fail_rate(),
                critical_fail_rate=self.critical_fail_rate(),
                lifetime_fail_rate=self.lifetime_fail_rate(),
                average_duration_ms=self.average_duration_ms(),
                last_updated_ms=self.last_updated_ms,
                flaky=report is not None,
                flakiness_report=report,
            )

    def __repr__(self) -> str:
        return (
            f"RunRecord(name={self._name!r}, "
            f"failRate={self.fail_percent_printable()}%)"
        )


__all__ = [
    "RunRecord",
    "RunSummary",
    "MAX_LATEST_RUNS",
    "FLAKY_STATUS_CHANGES",
]
