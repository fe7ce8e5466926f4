"""Run history tracking and event pattern detection."""

from flakescope.history.identity import RunIdentity, decode, extract_prefixed
from flakescope.history.matcher import detect
from flakescope.history.outcome import OutcomeCode, TemplateCode
from flakescope.history.record import RunRecord, RunSummary
from flakescope.history.registry import HistoryRegistry
from flakescope.history.template import EventTemplate

__all__ = [
    "RunIdentity",
    "decode",
    "extract_prefixed",
    "detect",
    "OutcomeCode",
    "TemplateCode",
    "RunRecord",
    "RunSummary",
    "HistoryRegistry",
    "EventTemplate",
]
