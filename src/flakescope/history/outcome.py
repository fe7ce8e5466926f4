"""Outcome codes stored in run history windows and used in templates."""

from __future__ import annotations

from enum import IntEnum


class OutcomeCode(IntEnum):
    """Result of a single test or build run.

    Values match the numeric result codes used upstream, so
    serialized histories stay comparable across tools.
    """

    OK = 0
    FAILURE = 1
    MUTED_FAILURE = 2
    CRITICAL_FAILURE = 3

    @property
    def is_failure(self) -> bool:
        """Whether this run counts toward lifetime failures."""
        return self in (OutcomeCode.FAILURE, OutcomeCode.MUTED_FAILURE)

    @property
    def is_hard_failure(self) -> bool:
        """Whether this run is an unmuted failure of any severity."""
        return self in (OutcomeCode.FAILURE, OutcomeCode.CRITICAL_FAILURE)


class TemplateCode(IntEnum):
    """Codes that may only appear inside an event template.

    Kept apart from OutcomeCode so a wildcard can never be written
    into a history window.
    """

    OK_OR_FAILURE = 10


# A single position in an event template
PatternCode = OutcomeCode | TemplateCode


def parse_pattern_code(value: str | int | OutcomeCode | TemplateCode) -> PatternCode:
    """Convert a config value ('FAILURE', 'ok_or_failure', 1) to a code.

    Raises:
        ValueError: If the value names no known code
    """
    if isinstance(value, (OutcomeCode, TemplateCode)):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not an outcome code: {value!r}")
    if isinstance(value, int):
        if value in OutcomeCode._value2member_map_:
            return OutcomeCode(value)
        if value in TemplateCode._value2member_map_:
            return TemplateCode(value)
        raise ValueError(f"Unknown outcome code value: {value}")
    if isinstance(value, str):
        key = value.strip().upper()
        if key in OutcomeCode.__members__:
            return OutcomeCode[key]
        if key in TemplateCode.__members__:
            return TemplateCode[key]
        raise ValueError(f"Unknown outcome code name: {value!r}")
    raise ValueError(f"Not an outcome code: {value!r}")


def matches(expected: PatternCode, actual: OutcomeCode) -> bool:
    """Check whether a stored code satisfies one template position.

    OK_OR_FAILURE accepts every stored code: passing runs and all
    failure kinds alike, MUTED_FAILURE and CRITICAL_FAILURE included.
    Patterns that must tell those apart spell the codes out.
    """
    if expected is TemplateCode.OK_OR_FAILURE:
        return True
    return expected == actual


__all__ = [
    "OutcomeCode",
    "TemplateCode",
    "PatternCode",
    "parse_pattern_code",
    "matches",
]
