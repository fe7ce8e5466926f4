"""Layered YAML settings source with include: support."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import yaml
from platformdirs import user_config_dir
from pydantic_settings import BaseSettings, YamlConfigSettingsSource

from flakescope.core.log import logger

APP_NAME = "flakescope"
CONFIG_FILE_NAME = "flakescope.yaml"
DEFAULTS_FILE = Path(__file__).parent.parent / "defaults" / "default.yaml"


def cli_includes(argv: list[str] | None = None) -> list[str]:
    """Collect --include values from argv ahead of CLI parsing."""
    argv = sys.argv if argv is None else argv
    found = []
    args = iter(argv[1:])
    for arg in args:
        if arg == "--include":
            value = next(args, None)
            if value is not None:
                found.append(value)
        elif arg.startswith("--include="):
            found.append(arg.split("=", 1)[1])
    return found


def deep_merge(base: dict, override: dict) -> dict:
    """Merge override into a copy of base; nested dicts merge, the
    rest is replaced."""
    merged = base.copy()
    for key, value in override.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class YamlWithIncludesSettingsSource(YamlConfigSettingsSource):
    """YAML source merging every configuration layer.

    Lowest to highest priority:
    package defaults < user config dir < ./flakescope.yaml <
    the settings' yaml_file (or an explicit one) < --include files.
    Each file may pull in others with an include: key; the
    including file wins over what it includes.
    """

    def __init__(
        self, settings_cls: type[BaseSettings], yaml_file=None
    ):
        base = yaml_file or settings_cls.model_config.get("yaml_file")
        if isinstance(base, (str, os.PathLike)):
            files = [base]
        else:
            files = list(base or [])
        files.extend(cli_includes())

        super().__init__(settings_cls, files or None)

    def _read_files(self, files):
        if files is None:
            files = []
        elif isinstance(files, (str, os.PathLike)):
            files = [files]

        candidates = [
            DEFAULTS_FILE,
            Path(user_config_dir(APP_NAME, appauthor=False))
            / CONFIG_FILE_NAME,
            Path(CONFIG_FILE_NAME),
        ]
        for f in files:
            path = Path(f).expanduser()
            if path not in candidates:
                candidates.append(path)

        result = {}
        for path in candidates:
            if not path.is_file():
                logger.debug("Configuration file not found", file=str(path))
                continue
            logger.debug("Loading configuration", file=str(path))
            result = deep_merge(result, self._load_with_includes(path, set()))
        return result

    def _load_with_includes(self, path: Path, visited: set[Path]) -> dict:
        """Load one file and, recursively, the files it includes.

        Raises:
            ValueError: On an include cycle
            FileNotFoundError: If an included file is missing
        """
        path = path.resolve()
        if path in visited:
            raise ValueError(f"Circular include: {path}")
        visited.add(path)

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        includes = data.pop("include", None) or []
        if isinstance(includes, str):
            includes = [includes]

        merged = {}
        for inc in includes:
            inc_path = Path(inc).expanduser()
            if not inc_path.is_absolute():
                inc_path = path.parent / inc_path
            merged = deep_merge(
                merged, self._load_with_includes(inc_path, visited.copy())
            )
        return deep_merge(merged, data)


__all__ = [
    "YamlWithIncludesSettingsSource",
    "cli_includes",
    "deep_merge",
    "DEFAULTS_FILE",
]
