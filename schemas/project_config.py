from __future__ import annotations

import re
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schemas.engine_types import EngineName

CONFIG_FILENAME = "agentrelay.config.json"
DEFAULT_DATA_DIR = ".agentrelay/users"
DEFAULT_SESSION_MSG = "hi!"


def derive_slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.strip().lower())
    return slug.strip("-") or "project"


class CodexOptions(BaseModel):
    network_access: bool = False
    full_disk_access: bool = False
    dangerously_enable_yolo: bool = False


class AntigravityOptions(BaseModel):
    approval_mode: Literal["default", "auto_edit", "yolo"] = "default"
    sandbox: bool = False


class ProjectConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    cwd: str
    config_dir: str = "."
    data_dir: str = DEFAULT_DATA_DIR

    engine: EngineName = EngineName.CLAUDE
    engine_command: Optional[str] = None
    engine_model: Optional[str] = None
    # Continue the previous engine session between messages.
    engine_session: bool = True
    # Prompt sent to active-reset engines when a user asks for a fresh session.
    engine_session_msg: str = DEFAULT_SESSION_MSG

    context: dict[str, str] = Field(default_factory=dict)
    root_context: dict[str, str] = Field(default_factory=dict)

    codex: CodexOptions = Field(default_factory=CodexOptions)
    antigravity: AntigravityOptions = Field(default_factory=AntigravityOptions)

    log_level: Literal["debug", "info", "warning", "error"] = "info"

    @field_validator("context", "root_context", mode="before")
    @classmethod
    def _stringify_context(cls, value):
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(key): "" if item is None else str(item) for key, item in value.items()}
        return value

    @property
    def slug(self) -> str:
        return derive_slug(self.name or Path(self.cwd).name)

    def declared_context(self) -> dict[str, str]:
        merged = dict(self.root_context)
        merged.update(self.context)
        return merged


class ServiceConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    context: dict[str, str] = Field(default_factory=dict)
    log_level: Literal["debug", "info", "warning", "error"] = "info"
    data_dir: str = DEFAULT_DATA_DIR
    projects: list[ProjectConfig] = Field(default_factory=list)

    def resolve_projects(self, config_dir: str | Path) -> list[ProjectConfig]:
        base = Path(config_dir).resolve()
        resolved: list[ProjectConfig] = []
        for project in self.projects:
            cwd = (base / project.cwd).resolve()
            data_dir = project.data_dir if "data_dir" in project.model_fields_set else self.data_dir
            resolved.append(
                project.model_copy(
                    update={
                        "cwd": str(cwd),
                        "config_dir": str(base),
                        "data_dir": str((cwd / data_dir).resolve()),
                        "root_context": dict(self.context),
                        "log_level": project.log_level
                        if "log_level" in project.model_fields_set
                        else self.log_level,
                    }
                )
            )
        return resolved
