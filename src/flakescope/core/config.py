"""Application configuration."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import platformdirs
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from flakescope.core.base import BaseConfig
from flakescope.core.log import Logger
from flakescope.core.yaml_settings import APP_NAME, YamlWithIncludesSettingsSource
from flakescope.history.record import FLAKY_STATUS_CHANGES, MAX_LATEST_RUNS
from flakescope.history.template import EventTemplate

# Modules reachable from {module.attr} templates in string settings,
# e.g. {platformdirs.user_state_dir} or {os.getcwd}
TEMPLATE_NAMESPACE = {
    'os': os,
    'platformdirs': platformdirs,
    'Path': Path,
}

TEMPLATE_PATTERN = re.compile(r'\{([a-z._]+)\}')


class HistoryConfig(BaseConfig):
    """Run history window settings."""

    capacity: int = Field(
        default=MAX_LATEST_RUNS,
        ge=1,
        description="Most recent runs kept per test or build",
    )
    flaky_threshold: int = Field(
        default=FLAKY_STATUS_CHANGES,
        ge=0,
        description=(
            "Status changes within the window above which an entity "
            "is reported flaky"
        ),
    )


class Config(BaseConfig):
    """Configuration loaded from YAML, environment and CLI."""

    logger: Logger = Field(
        default=None,
        description="Log sinks and levels",
    )
    history: HistoryConfig = Field(
        default_factory=HistoryConfig,
        description="Run history window settings",
    )
    templates: dict[str, EventTemplate] = Field(
        default_factory=dict,
        description=(
            "Named event templates used for issue detection; "
            "codes are OK, FAILURE, MUTED_FAILURE, CRITICAL_FAILURE "
            "or OK_OR_FAILURE"
        ),
    )
    run_name: str = Field(
        default="default",
        description="Name of this run, used in log paths",
    )
    log_root: Path = Field(
        default_factory=(
            lambda: Path(platformdirs.user_state_dir(APP_NAME)) / "log"
        ),
        description="Root directory for log files",
    )

    @field_validator("templates", mode="before")
    @classmethod
    def _name_templates(cls, value):
        """Default each template's name to its key."""
        if not isinstance(value, dict):
            return value
        named = {}
        for key, tmpl in value.items():
            if isinstance(tmpl, dict) and not tmpl.get("name"):
                tmpl = {**tmpl, "name": key}
            elif isinstance(tmpl, EventTemplate) and not tmpl.name:
                tmpl = tmpl.model_copy(update={"name": key})
            named[key] = tmpl
        return named

    def setup_logging(self) -> Logger:
        """Install the global logger from the logger section."""
        from flakescope.core.log import setup_logger

        if self.logger is None:
            self.logger = Logger()

        self.logger = setup_logger(
            log_root=self.log_root,
            run_name=self.run_name,
            level=self.logger.level,
            console=self.logger.console,
            otlp=self.logger.otlp,
            file=self.logger.file,
            logfire=self.logger.logfire,
        )
        return self.logger

    def close(self):
        """Close sinks and uninstall the global logger."""
        from flakescope.core.log import close_logger

        close_logger()
        super().close()


class Settings(BaseSettings):
    """All settings, from every configuration layer.

    Sources, highest priority first: constructor arguments, YAML
    (see YamlWithIncludesSettingsSource), .env file, FLAKESCOPE_*
    environment variables, file secrets.
    """

    config: Config = Field(
        default_factory=Config,
        description="Application configuration",
    )
    include: list[str] | None = Field(
        default=None,
        description=(
            "Additional YAML files to merge over the configuration. "
            "Use --include on the CLI."
        ),
    )

    model_config = SettingsConfigDict(
        yaml_file="flakescope.yaml",
        env_file=".env",
        env_prefix="FLAKESCOPE_",
        env_nested_delimiter="__",
        cli_implicit_flags=True,
        cli_use_class_docs_for_groups=True,
        extra='ignore',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            YamlWithIncludesSettingsSource(settings_cls),
            dotenv_settings,
            env_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _finish_loading(self) -> "Settings":
        """Expand templates, then start logging with the result."""
        self.substitute_templates()
        self.config.setup_logging()
        return self

    def substitute_templates(self) -> None:
        """Expand {config.*} and {module.attr} references in string
        and Path settings. Unresolvable references stay as written.
        """
        self._substitute(self)

    def _substitute(self, obj: Any) -> None:
        if isinstance(obj, BaseModel):
            if obj.model_config.get("frozen"):
                return
            for field_name in obj.__class__.model_fields:
                value = getattr(obj, field_name)
                new_value = self._substitute_value(value)
                if new_value is not value:
                    setattr(obj, field_name, new_value)
        elif isinstance(obj, dict):
            for key in obj:
                obj[key] = self._substitute_value(obj[key])
        elif isinstance(obj, list):
            for i, item in enumerate(obj):
                obj[i] = self._substitute_value(item)

    def _substitute_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self._substitute_string(value)
        if isinstance(value, Path):
            return Path(self._substitute_string(str(value)))
        if isinstance(value, (BaseModel, dict, list)):
            self._substitute(value)
        return value

    def _substitute_string(self, value: str) -> str:
        def replace(match):
            parts = match.group(1).split(".")
            if parts[0] in TEMPLATE_NAMESPACE:
                obj = TEMPLATE_NAMESPACE[parts[0]]
                parts = parts[1:]
            else:
                obj = self

            try:
                for part in parts:
                    obj = getattr(obj, part)
                if callable(obj):
                    if getattr(obj, "__module__", "").startswith(
                        "platformdirs"
                    ):
                        obj = obj(APP_NAME, appauthor=False)
                    else:
                        obj = obj()
                return str(obj)
            except (AttributeError, TypeError):
                return match.group(0)

        return TEMPLATE_PATTERN.sub(replace, value)

    def close(self):
        if self.config is not None:
            self.config.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):  # noqa: U100
        self.close()
        return False


__all__ = ["Settings", "Config", "HistoryConfig", "TEMPLATE_NAMESPACE"]
