"""CLI command modules for flakescope."""

from flakescope.command.analyze import AnalyzeCommand
from flakescope.command.templates import TemplatesCommand

__all__ = ["AnalyzeCommand", "TemplatesCommand"]
