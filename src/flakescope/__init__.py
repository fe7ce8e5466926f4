"""Flakescope - run history tracking and flaky test detection."""
