import logging
import stat
from pathlib import Path

import pytest

from engine.project_context import ProjectContext
from schemas.project_config import ProjectConfig


def write_script(path: Path, body: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def make_project(tmp_path):
    def _make(**overrides) -> ProjectContext:
        values = {"name": "demo", "cwd": str(tmp_path), "config_dir": str(tmp_path)}
        values.update(overrides)
        return ProjectContext(config=ProjectConfig(**values), logger=logging.getLogger("agentrelay.project.test"))

    return _make


@pytest.fixture
def fake_cli(tmp_path):
    def _make(body: str, name: str = "fake-cli") -> str:
        return str(write_script(tmp_path / "bin" / name, body))

    return _make
