"""
Configuration loading for pgflow runs.

Reads a YAML run file, validates it with the pydantic models and turns it
into what the core consumes: GroupSpecs of TaskDescriptors and a spawner.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

import yaml
from pydantic import ValidationError

from .errors import ConfigurationError
from .models import GroupConfig, RunConfig, SpawnerConfig
from .sequence import GroupSpec
from .spawners import CargoSpawner, CommandSpawner
from .task import Spawner, TaskDescriptor

logger = logging.getLogger(__name__)


class ConfigurationLoader:
    """YAML run configuration loader and validator."""

    def __init__(self, config_path: Path):
        self.config_path = Path(config_path)
        self.config_dir = self.config_path.parent

    def load_configuration(self) -> RunConfig:
        logger.info(f"Loading configuration from {self.config_path}")
        if not self.config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")
        try:
            with open(self.config_path, "r") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as ex:
            raise ConfigurationError(f"Invalid YAML in {self.config_path}: {ex}") from ex
        if not isinstance(raw, dict):
            raise ConfigurationError(f"{self.config_path}: top level must be a mapping")
        try:
            config = RunConfig.model_validate(raw)
        except ValidationError as ex:
            raise ConfigurationError(f"{self.config_path}: {ex}") from ex
        logger.info(f"Configuration loaded: {len(config.groups)} group(s)")
        return config

    def resolve_parent_dir(self, config: RunConfig) -> Path:
        """Relative parent_dir is taken relative to the configuration file."""
        p = Path(config.parent_dir).expanduser()
        if not p.is_absolute():
            p = self.config_dir / p
        return p.resolve()


def to_descriptors(group: GroupConfig) -> List[TaskDescriptor]:
    return [
        TaskDescriptor(
            subdir=t.subdir,
            task_id=t.task,
            options=tuple(t.options),
            description=t.description,
            metadata=t.metadata,
        )
        for t in group.tasks
    ]


def build_group_specs(config: RunConfig, only: Optional[Sequence[str]] = None) -> List[GroupSpec]:
    """GroupSpecs in file order, optionally restricted to the named groups."""
    if only:
        known = {g.name for g in config.groups}
        missing = [n for n in only if n not in known]
        if missing:
            raise ConfigurationError(f"Unknown group(s): {', '.join(missing)}")
    return [
        GroupSpec(name=g.name, tasks=to_descriptors(g), group_end=g.group_end)
        for g in config.groups
        if not only or g.name in only
    ]


def build_spawner(spawner: SpawnerConfig) -> Spawner:
    if spawner.type == "cargo":
        return CargoSpawner(profile=spawner.profile, cargo=spawner.cargo, env=spawner.env)
    return CommandSpawner(spawner.command or [], env=spawner.env)
