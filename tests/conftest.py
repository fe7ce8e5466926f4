"""Pytest configuration and fixtures for flakescope tests."""

import tempfile
from pathlib import Path

import pytest

from flakescope.core.log import ConsoleSink, setup_logger
from flakescope.history.identity import RunIdentity
from flakescope.history.record import RunRecord


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    """Console-only logging at debug level; nothing leaves the machine."""
    setup_logger(
        log_root=Path(tempfile.gettempdir()) / "flakescope-tests",
        run_name="test",
        console=ConsoleSink(level="debug"),
    )


def build_record(codes, name="test.Example", start_build=100, **kwargs):
    """RunRecord holding one test outcome per code, in build order."""
    record = RunRecord(name, **kwargs)
    for offset, code in enumerate(codes):
        record.record_test_outcome(
            RunIdentity(start_build + offset, 1), code
        )
    return record


@pytest.fixture
def make_record():
    return build_record

