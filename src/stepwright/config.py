from __future__ import annotations

from contextvars import ContextVar
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from stepwright.exceptions import ConfigError
from stepwright.logging import get_logger

__all__ = [
    "StepwrightConfig",
    "PROJECT_CONFIG_FILENAME",
    "load_config",
    "get_user_config_path",
]

logger = get_logger(__name__)

PROJECT_CONFIG_FILENAME = "stepwright.yaml"

# Project config file used by the settings sources of the current load.
_project_config_path: ContextVar[Path | None] = ContextVar(
    "stepwright_project_config_path", default=None
)


class YamlConfigSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from YAML files."""

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        yaml_file: Path | None = None,
    ):
        super().__init__(settings_cls)
        self.yaml_file = yaml_file
        self._config_data: dict[str, Any] = {}
        if yaml_file and yaml_file.exists():
            try:
                with open(yaml_file) as f:
                    loaded = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(
                    message=f"Invalid YAML in {yaml_file}: {e}",
                    field=None,
                    value=None,
                ) from e
            if loaded is None:
                logger.warning(f"Config file {yaml_file} is empty, using defaults.")
            elif not isinstance(loaded, dict):
                raise ConfigError(
                    message=f"Config file {yaml_file} must contain a mapping",
                    field=None,
                    value=loaded,
                )
            else:
                self._config_data = loaded

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        """Get value for a specific field from the YAML config."""
        if field_name in self._config_data:
            return self._config_data[field_name], field_name, False
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        """Return the complete config data."""
        return self._config_data


class StepwrightConfig(BaseSettings):
    """Root configuration object for the workflow engine and CLI.

    Attributes:
        autonomous_mode: Run without a human in the loop ("YOLO"): optional
            steps and asks are skipped, outputs are auto-approved.
        root_context: Base directory for relative workflow references, file
            predicates and written outputs. Defaults to the working directory.
        state_dir: Directory holding persisted run state. Relative paths are
            resolved against ``root_context``.
        variables: Global variable defaults, overridden by a workflow's own
            declared variables and by caller inputs.
        verbosity: Default console log level for the CLI.
    """

    model_config = SettingsConfigDict(
        env_prefix="STEPWRIGHT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    autonomous_mode: bool = False
    root_context: Path = Field(default_factory=Path.cwd)
    state_dir: Path = Field(default_factory=lambda: Path(".stepwright/state"))
    variables: dict[str, Any] = Field(default_factory=dict)
    verbosity: Literal["error", "warning", "info", "debug"] = "warning"

    @field_validator("root_context")
    @classmethod
    def check_root_context_exists(cls, v: Path) -> Path:
        """Warn if root_context doesn't exist."""
        if not v.exists():
            logger.warning(
                f"Configured root_context does not exist: {v}. "
                "Relative workflow references will not resolve."
            )
        return v

    @property
    def resolved_state_dir(self) -> Path:
        """State directory, anchored at ``root_context`` when relative."""
        if self.state_dir.is_absolute():
            return self.state_dir
        return self.root_context / self.state_dir

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order of settings sources.

        Priority (highest to lowest):
        1. Init settings (explicit keyword arguments)
        2. Environment variables (STEPWRIGHT_*)
        3. Project YAML config (./stepwright.yaml or the path given to load_config)
        4. User YAML config (~/.config/stepwright/config.yaml)
        5. Field defaults
        """
        project_config_path = _project_config_path.get() or (
            Path.cwd() / PROJECT_CONFIG_FILENAME
        )

        return (
            init_settings,
            env_settings,
            YamlConfigSource(settings_cls, project_config_path),
            YamlConfigSource(settings_cls, get_user_config_path()),
        )


def get_user_config_path() -> Path:
    """Get the path to the user configuration file.

    Returns:
        Path to ~/.config/stepwright/config.yaml
    """
    return Path.home() / ".config" / "stepwright" / "config.yaml"


def load_config(config_path: Path | None = None, **overrides: Any) -> StepwrightConfig:
    """Load configuration with hierarchy: defaults -> user -> project -> env.

    Args:
        config_path: Optional path to the project config file. Defaults to
            ./stepwright.yaml
        **overrides: Field values that take precedence over every source.

    Returns:
        StepwrightConfig instance with merged configuration

    Raises:
        ConfigError: If a config file is not valid YAML or a value fails
            validation.
    """
    if config_path is None:
        config_path = Path.cwd() / PROJECT_CONFIG_FILENAME

    if not config_path.exists():
        logger.info("No project configuration found, using defaults.")

    token = _project_config_path.set(config_path)
    try:
        return StepwrightConfig(**overrides)
    except ValidationError as e:
        first_error = e.errors()[0]
        field = ".".join(str(loc) for loc in first_error["loc"])
        raise ConfigError(
            message=f"Invalid configuration: {first_error['msg']}",
            field=field,
            value=first_error.get("input"),
        ) from e
    finally:
        _project_config_path.reset(token)
