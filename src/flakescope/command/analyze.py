"""Analyze command - replay recorded occurrences and report findings."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, ValidationError

from flakescope.core.log import logger
from flakescope.history.record import RunSummary
from flakescope.history.registry import HistoryRegistry
from flakescope.ingest import Ingestor, occurrence_adapter
from flakescope.issues import DetectedIssue, IssueDetector

if TYPE_CHECKING:
    from flakescope.core.config import Settings


def read_occurrences(path: Path) -> Iterator:
    """Yield occurrences from a JSON-lines file.

    Blank lines are ignored; lines that fail validation are logged
    and skipped. Undecodable bytes are replaced so such a line fails
    validation instead of aborting the read.
    """
    with open(path, encoding="utf-8", errors="replace") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield occurrence_adapter.validate_json(line)
            except ValidationError as e:
                logger.warn(
                    "Skipping invalid occurrence line",
                    file=str(path),
                    line=lineno,
                    errors=e.error_count(),
                )


class AnalysisResult(BaseModel):
    """Outcome of one analyze run."""

    accepted: int
    skipped: int
    entities: int
    flaky: dict[str, str] = Field(default_factory=dict)
    issues: list[DetectedIssue] = Field(default_factory=list)
    summaries: list[RunSummary] = Field(default_factory=list)


class AnalyzeCommand(BaseModel):
    """Replay occurrences from a JSON-lines file into a fresh history,
    then report flaky entities and detected issues.

    Each line holds one occurrence, with "kind" set to "test",
    "build" or "critical".
    """

    input: Path = Field(description="JSON-lines file of occurrences")
    verbose: bool = Field(
        default=False,
        description="Also log the statistics of every entity",
    )

    def analyze(self, settings: Settings) -> AnalysisResult:
        """Build a registry from the input file and query it.

        Raises:
            FileNotFoundError: If the input file does not exist
        """
        if not self.input.is_file():
            raise FileNotFoundError(f"Input file not found: {self.input}")

        registry = HistoryRegistry.from_config(settings.config.history)
        ingestor = Ingestor(registry)

        with logger.span("Replaying occurrences", file=str(self.input)):
            for occurrence in read_occurrences(self.input):
                ingestor.ingest(occurrence)

        stats = ingestor.stats
        summaries = [record.summary() for record in registry.records()]
        flaky = {
            s.name: s.flakiness_report for s in summaries if s.flaky
        }

        detector = IssueDetector(settings.config.templates)
        return AnalysisResult(
            accepted=stats.accepted,
            skipped=stats.skipped,
            entities=len(registry),
            flaky=flaky,
            issues=detector.detect_all(registry),
            summaries=summaries,
        )

    def run(self, settings: Settings) -> int:
        """Run the analysis and log the findings.

        Returns:
            Exit code (0=success, 1=input missing)
        """
        try:
            result = self.analyze(settings)
        except FileNotFoundError:
            logger.error("Input file not found", file=str(self.input))
            return 1

        logger.info(
            "Replayed occurrences",
            accepted=result.accepted,
            skipped=result.skipped,
            entities=result.entities,
        )

        for name, report in result.flaky.items():
            logger.warn("Flaky entity", entity=name, report=report)

        for issue in result.issues:
            logger.info(
                "Issue detected",
                entity=issue.entity,
                template=issue.template,
                build_id=issue.container_id,
            )

        if self.verbose:
            for summary in result.summaries:
                logger.info(
                    "Entity statistics",
                    entity=summary.name,
                    runs=summary.runs,
                    window=summary.window_size,
                    fail_rate=summary.fail_rate,
                    lifetime_fail_rate=summary.lifetime_fail_rate,
                    average_duration_ms=summary.average_duration_ms,
                )

        return 0
