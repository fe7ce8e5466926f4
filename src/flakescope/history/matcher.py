"""Locate template patterns within a run history window."""

from __future__ import annotations

from typing import TYPE_CHECKING

from flakescope.core.log import logger
from flakescope.history.outcome import OutcomeCode, PatternCode, matches

if TYPE_CHECKING:
    from flakescope.history.identity import RunIdentity
    from flakescope.history.record import RunRecord
    from flakescope.history.template import EventTemplate


def detect(record: RunRecord, template: EventTemplate) -> RunIdentity | None:
    """Find the anchor run where template occurred in record's window.

    With should_be_first set, only the start of the window is
    tested, and only while the window still holds every run ever
    recorded; otherwise an evicted earlier run could make a false
    "first occurrence" claim. Without it, candidate positions are
    scanned from the most recent backwards and the latest match
    wins.

    Args:
        record: History to search
        template: Pattern to look for

    Returns:
        Identity of the anchor run, or None if the window is too
        short or nothing matches
    """
    pattern = template.pattern
    anchor = template.anchor_offset

    # Snapshot and run count must agree, so read both under the lock
    with record.lock:
        history = record.window_snapshot()
        runs = record.runs

    if len(history) < len(pattern):
        return None

    if template.should_be_first:
        if len(history) < runs:
            logger.trace(
                "Early history evicted, cannot confirm first occurrence",
                entity=record.name,
                template=template.name,
            )
            return None
        starts = [0]
    else:
        starts = range(len(history) - len(pattern), -1, -1)

    codes = [code for _, code in history]
    for start in starts:
        if _matches_at(pattern, codes, start):
            found = history[start + anchor][0]
            logger.debug(
                "Template matched",
                entity=record.name,
                template=template.name,
                run=str(found),
            )
            return found

    return None


def _matches_at(
    pattern: tuple[PatternCode, ...],
    codes: list[OutcomeCode],
    start: int,
) -> bool:
    """Whether every pattern position matches codes from start on."""
    for offset, expected in enumerate(pattern):
        if not matches(expected, codes[start + offset]):
            return False
    return True


__all__ = ["detect"]
