"""Scaffold a project: config file, engine instructions file and skills directory.

Run from the repository root: ``python -m scripts.init_project --cwd ./workspace``.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from engine.registry import engine_names, get_engine
from schemas.project_config import CONFIG_FILENAME

INSTRUCTIONS_TEMPLATE = "# Project instructions\n\nDescribe how the agent should work in this project.\n"


def config_template(engine: str) -> dict:
    return {
        "log_level": "info",
        "context": {},
        "projects": [
            {
                "name": "my-project",
                "cwd": ".",
                "engine": engine,
                "engine_session": True,
                "context": {},
            }
        ],
    }


def ensure_config(root: Path, engine: str) -> bool:
    config_path = root / CONFIG_FILENAME
    if config_path.exists():
        print(f"[init_project] {CONFIG_FILENAME} already exists in {root}, leaving it")
        return False
    config_path.write_text(json.dumps(config_template(engine), indent=2) + "\n", encoding="utf-8")
    print(f"[init_project] Created {config_path}")
    return True


def ensure_engine_files(root: Path, engine: str) -> list[Path]:
    adapter = get_engine(engine)
    created: list[Path] = []

    skills_dir = Path(adapter.skills_dir(str(root)))
    if not skills_dir.exists():
        skills_dir.mkdir(parents=True)
        created.append(skills_dir)
        print(f"[init_project] Created {skills_dir}")

    instructions = root / adapter.instructions_file()
    if not instructions.exists():
        instructions.write_text(INSTRUCTIONS_TEMPLATE, encoding="utf-8")
        created.append(instructions)
        print(f"[init_project] Created {instructions}")
    return created


def run(root: Path, engine: str) -> None:
    root = root.resolve()
    root.mkdir(parents=True, exist_ok=True)
    ensure_config(root, engine)
    ensure_engine_files(root, engine)
    print("[init_project] Done")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Scaffold an agentrelay project")
    parser.add_argument("--cwd", default=".", help="Project directory")
    parser.add_argument("--engine", default="claude", choices=engine_names())
    args = parser.parse_args()
    run(Path(args.cwd), args.engine)
