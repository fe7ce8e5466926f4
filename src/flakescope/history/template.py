"""Declarative outcome patterns used to locate events in a history."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from flakescope.history.outcome import PatternCode, parse_pattern_code


class EventTemplate(BaseModel):
    """Pattern of outcome codes around an anchor run.

    The anchor is the first code of event_and_after; before_event
    holds the codes expected strictly before it.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(
        default="",
        description="Template name used when reporting matches",
    )
    before_event: tuple[PatternCode, ...] = Field(
        default=(),
        description="Codes expected strictly before the anchor run",
    )
    event_and_after: tuple[PatternCode, ...] = Field(
        min_length=1,
        description="Codes expected from the anchor run onward",
    )
    should_be_first: bool = Field(
        default=False,
        description=(
            "Only match when the anchor is the entity's very first "
            "recorded run"
        ),
    )

    @field_validator("before_event", "event_and_after", mode="before")
    @classmethod
    def _parse_codes(cls, value):
        """Accept code names or numbers as written in YAML."""
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        elif not isinstance(value, (list, tuple)):
            raise ValueError(
                f"Expected a list of outcome codes, got {value!r}"
            )
        return tuple(parse_pattern_code(v) for v in value)

    @property
    def pattern(self) -> tuple[PatternCode, ...]:
        """Full pattern: before_event followed by event_and_after."""
        return self.before_event + self.event_and_after

    @property
    def anchor_offset(self) -> int:
        """Index of the anchor run within pattern."""
        return len(self.before_event)


__all__ = ["EventTemplate"]
