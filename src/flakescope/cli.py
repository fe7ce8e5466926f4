#!/usr/bin/env python3
"""Flakescope CLI - run history analysis for CI test results."""

import sys

from pydantic_settings import CliApp, CliSubCommand, get_subcommand

from flakescope.command.analyze import AnalyzeCommand
from flakescope.command.templates import TemplatesCommand
from flakescope.core.config import Settings


class CliSettings(Settings):
    """Track test and build outcomes and find flaky tests and
    failure patterns.

    Configuration sources (in priority order):
    1. Command-line arguments (--config.history.capacity 100)
    2. --include files, ./flakescope.yaml, user config directory
    3. .env file
    4. Environment variables
       (FLAKESCOPE_CONFIG__HISTORY__CAPACITY=100)
    """

    analyze: CliSubCommand[AnalyzeCommand]
    templates: CliSubCommand[TemplatesCommand]

    def cli_cmd(self):
        """Dispatch to the chosen subcommand, or show help."""
        subcommand = get_subcommand(self, is_required=False)

        if subcommand is None:
            CliApp.run(CliSettings, cli_args=['--help'])
            sys.exit(1)

        # Closing the settings flushes and closes every log sink
        with self:
            exit_code = subcommand.run(self)
        raise SystemExit(exit_code)


def main():
    """Console script entry point."""
    CliApp.run(CliSettings)


if __name__ == "__main__":
    main()
