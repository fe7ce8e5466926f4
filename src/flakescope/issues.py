"""Detect configured failure patterns across all tracked entities."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from pydantic import BaseModel

from flakescope.core.log import logger
from flakescope.history.identity import RunIdentity
from flakescope.history.matcher import detect
from flakescope.history.record import RunRecord
from flakescope.history.registry import HistoryRegistry
from flakescope.history.template import EventTemplate


class DetectedIssue(BaseModel):
    """A template match: which entity, which pattern, which run."""

    entity: str
    template: str
    container_id: int
    item_id: int

    @property
    def identity(self) -> RunIdentity:
        return RunIdentity(self.container_id, self.item_id)

    def __str__(self) -> str:
        return (
            f"{self.template} in {self.entity} at build "
            f"{self.container_id}"
        )


class IssueDetector:
    """Runs a fixed set of event templates over run records."""

    def __init__(self, templates: Mapping[str, EventTemplate] | Iterable[EventTemplate]):
        if isinstance(templates, Mapping):
            templates = [
                t if t.name else t.model_copy(update={"name": key})
                for key, t in templates.items()
            ]
        self.templates = list(templates)

    def detect_in(self, record: RunRecord) -> list[DetectedIssue]:
        """All templates that match record, in template order."""
        issues = []
        for template in self.templates:
            found = detect(record, template)
            if found is not None:
                issues.append(DetectedIssue(
                    entity=record.name,
                    template=template.name,
                    container_id=found.container_id,
                    item_id=found.item_id,
                ))
        return issues

    def detect_all(self, registry: HistoryRegistry) -> list[DetectedIssue]:
        """Issues across every record, ordered by entity name."""
        issues = []
        with logger.span("Detecting issues", entities=len(registry)):
            for record in registry.records():
                issues.extend(self.detect_in(record))
        logger.info(f"Detected {len(issues)} issues")
        return issues


__all__ = ["DetectedIssue", "IssueDetector"]
