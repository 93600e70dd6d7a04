"""
Pydantic models for the run configuration file.

Loading and path resolution live in pgflow.core.configuration; these models
only validate shape and values.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .indicators import GroupEnd


class TaskConfig(BaseModel):
    subdir: str
    task: str
    options: List[str] = Field(default_factory=list)
    description: str = ""
    metadata: Any = None

    @field_validator("subdir", "task")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class GroupConfig(BaseModel):
    name: str
    group_end: GroupEnd = GroupEnd.ON_FAILURE_FINISH_ACTIVE
    tasks: List[TaskConfig] = Field(default_factory=list)

    @field_validator("group_end", mode="before")
    @classmethod
    def parse_group_end(cls, v: Any) -> GroupEnd:
        return GroupEnd.parse(v)


class SpawnerConfig(BaseModel):
    type: Literal["command", "cargo"] = "command"
    command: Optional[List[str]] = None
    profile: str = "dev"
    cargo: Optional[str] = None
    env: Dict[str, str] = Field(default_factory=dict)

    @field_validator("env", mode="before")
    @classmethod
    def stringify_env(cls, v: Any) -> Dict[str, str]:
        return {str(k): str(val) for k, val in (v or {}).items()}

    @model_validator(mode="after")
    def check_command(self) -> "SpawnerConfig":
        if self.type == "command" and not self.command:
            raise ValueError("spawner.command is required for the command spawner")
        return self


class RunConfig(BaseModel):
    parent_dir: str = "."
    poll_interval: float = Field(default=0.01, gt=0)
    max_scan_errors: int = Field(default=3, ge=1)
    spawner: SpawnerConfig
    groups: List[GroupConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def unique_group_names(self) -> "RunConfig":
        seen = set()
        for g in self.groups:
            if g.name in seen:
                raise ValueError(f"duplicate group name: {g.name}")
            seen.add(g.name)
        return self
