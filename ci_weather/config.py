"""Dashboard configuration loaded from YAML.

Loads config.yaml (job sections, fatal step patterns, required jobs,
maintainer directory, sub-projects, rename settings) with environment
variable overrides.
Pattern: CI_WEATHER__{SECTION}__{KEY} overrides nested YAML keys.
Example: CI_WEATHER__RENAMES__RETENTION_DAYS=5
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigError
from .models import Maintainer

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"
ENV_PREFIX = "CI_WEATHER"


# --- Sections ---


class JobConfig(BaseModel):
    name: str
    description: Optional[str] = None
    maintainers: list[str] = []

    @property
    def display_name(self) -> str:
        return self.description or self.name


class SectionConfig(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    jobs: list[JobConfig] = []

    @field_validator("jobs", mode="before")
    @classmethod
    def _plain_job_names(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"name": j} if isinstance(j, str) else j for j in value]
        return value


class SubprojectConfig(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    patterns: list[str] = []


class MaintainerConfig(BaseModel):
    name: Optional[str] = None
    github: Optional[str] = None
    slack: Optional[str] = None


# --- Renames ---


class RenameExclusion(BaseModel):
    old: str
    new: str


class RenameConfig(BaseModel):
    exclude: list[RenameExclusion] = []
    similarity_threshold: float = Field(default=0.7, ge=0, le=1)
    prefix_threshold: float = Field(default=0.6, ge=0, le=1)
    retention_days: int = Field(default=3, ge=0, description="Days a candidate stays visible")
    activity_days: int = Field(default=5, ge=1, description="Recent slots checked for activity")

    def is_excluded(self, old: str, new: str) -> bool:
        return any(e.old == old and e.new == new for e in self.exclude)


# --- Top level ---


class DashboardConfig(BaseModel):
    sections: list[SectionConfig] = []
    fatal_steps: list[Union[str, dict]] = []
    required_tests: list[str] = []
    maintainers: dict[str, MaintainerConfig] = {}
    subprojects: list[SubprojectConfig] = []
    renames: RenameConfig = RenameConfig()
    file_extensions: list[str] = ["bats"]

    def configured_jobs(self) -> list[tuple[SectionConfig, JobConfig]]:
        """All (section, job) pairs in config order."""
        return [(section, job) for section in self.sections for job in section.jobs]

    def job_config(self, job_name: str) -> Optional[JobConfig]:
        for _, job in self.configured_jobs():
            if job.name == job_name:
                return job
        return None

    def resolve_maintainers(self, handles: list[str]) -> list[Maintainer]:
        """Look up handles in the maintainer directory; unknown handles are kept bare."""
        resolved = []
        for handle in handles:
            entry = self.maintainers.get(handle)
            if entry is None:
                logger.debug(f"Maintainer {handle!r} not in directory")
                resolved.append(Maintainer(handle=handle))
            else:
                resolved.append(Maintainer(handle=handle, **entry.model_dump()))
        return resolved


def _apply_env_overrides(config_dict: dict, prefix: str = ENV_PREFIX) -> dict:
    """Apply environment variable overrides to config dict.

    Pattern: PREFIX__SECTION__KEY=value maps to config[section][key] = value
    """
    for key, value in os.environ.items():
        if not key.startswith(f"{prefix}__"):
            continue
        parts = key[len(prefix) + 2:].lower().split("__")
        target = config_dict
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        # Type coercion for common cases
        if value.lower() in ("true", "false"):
            value = value.lower() == "true"
        elif value.isdigit():
            value = int(value)
        target[parts[-1]] = value
    return config_dict


def load_config(config_path: Optional[Union[str, Path]] = None) -> DashboardConfig:
    """Load configuration from YAML file with env overrides.

    Priority: env vars > YAML file > defaults. A missing or unparseable
    file is fatal for the run.
    """
    if config_path is None:
        config_path = os.getenv("CI_WEATHER_CONFIG", DEFAULT_CONFIG_PATH)
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Config not found: {path}")

    try:
        with open(path) as f:
            config_dict = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        raise ConfigError(f"Failed to load {path}: {e}") from e

    if not isinstance(config_dict, dict):
        raise ConfigError(f"Config {path} must be a mapping, got {type(config_dict).__name__}")

    config_dict = _apply_env_overrides(config_dict)

    try:
        config = DashboardConfig(**config_dict)
    except ValidationError as e:
        raise ConfigError(f"Invalid config {path}: {e}") from e

    logger.info(
        f"Config loaded from {path}: {len(config.sections)} sections, "
        f"{len(config.configured_jobs())} jobs"
    )
    return config
