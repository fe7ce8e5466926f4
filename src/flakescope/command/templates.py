"""Templates command - list configured event templates."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel

from flakescope.core.log import logger

if TYPE_CHECKING:
    from flakescope.core.config import Settings


def describe(template) -> str:
    """One-line rendering such as 'OK OK | FAILURE FAILURE (first)'."""
    before = " ".join(code.name for code in template.before_event)
    after = " ".join(code.name for code in template.event_and_after)
    text = f"{before} | {after}" if before else f"| {after}"
    if template.should_be_first:
        text += " (first)"
    return text


class TemplatesCommand(BaseModel):
    """List the event templates used for issue detection."""

    def run(self, settings: Settings) -> int:
        templates = settings.config.templates
        if not templates:
            logger.warn("No event templates configured")
            return 0

        for name, template in sorted(templates.items()):
            logger.info("Template", name=name, pattern=describe(template))
        return 0
