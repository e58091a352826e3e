from __future__ import annotations

import inspect
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from engine.hook_loader import HotModuleLoader

logger = logging.getLogger(__name__)

COMMANDS_DIR = Path(".agentrelay") / "commands"
SKILL_FILE = "SKILL.md"
FRONTMATTER_PATTERN = re.compile(r"^---\n(.*?)\n---\n?(.*)$", re.DOTALL)


@dataclass
class CommandEntry:
    command: str
    description: str
    file_path: str


@dataclass
class SlashCommand:
    name: str
    args: list[str] = field(default_factory=list)


@dataclass
class SkillEntry:
    name: str
    description: str
    file_path: str


def project_command_dir(project_cwd: str | Path) -> Path:
    return Path(project_cwd) / COMMANDS_DIR


def global_command_dir(config_dir: str | Path) -> Path:
    return Path(config_dir) / COMMANDS_DIR


def parse_slash_command(text: str) -> Optional[SlashCommand]:
    """``/deploy@bot staging now`` -> ``SlashCommand("deploy", ["staging", "now"])``."""
    if not text or not text.startswith("/"):
        return None
    tokens = text[1:].split()
    if not tokens:
        return None
    name = tokens[0].split("@")[0]
    if not name:
        return None
    return SlashCommand(name=name, args=tokens[1:])


def resolve_command_path(name: str, project_cwd: str | Path, config_dir: str | Path) -> Optional[Path]:
    if not re.fullmatch(r"[A-Za-z0-9_-]+", name):
        return None
    for directory in (project_command_dir(project_cwd), global_command_dir(config_dir)):
        candidate = directory / f"{name}.py"
        if candidate.is_file():
            return candidate
    return None


def load_command_entry(loader: HotModuleLoader, path: Path, log: Optional[logging.Logger] = None) -> Optional[CommandEntry]:
    log = log or logger
    try:
        module = loader.load(path)
    except Exception as exc:
        log.error(f"Failed to load command file, skipping: {path} ({exc})")
        return None
    if module is None:
        return None
    description = getattr(module, "description", None)
    if not isinstance(description, str) or not description.strip():
        log.warning(f"Command file missing or empty `description`, skipping: {path}")
        return None
    return CommandEntry(command=path.stem, description=description.strip(), file_path=str(path))


def _scan(loader: HotModuleLoader, directory: Path, log: logging.Logger) -> list[CommandEntry]:
    if not directory.is_dir():
        return []
    entries = []
    for path in sorted(directory.glob("*.py")):
        entry = load_command_entry(loader, path, log)
        if entry is not None:
            entries.append(entry)
    return entries


def list_commands(
    loader: HotModuleLoader,
    project_cwd: str | Path,
    config_dir: str | Path,
    log: Optional[logging.Logger] = None,
) -> list[CommandEntry]:
    log = log or logger
    merged: dict[str, CommandEntry] = {}
    # Globals first so project commands overwrite them on name collision.
    for entry in _scan(loader, global_command_dir(config_dir), log):
        merged[entry.command] = entry
    for entry in _scan(loader, project_command_dir(project_cwd), log):
        merged[entry.command] = entry
    return list(merged.values())


async def run_command(
    loader: HotModuleLoader,
    path: str | Path,
    args: list[str],
    ctx: dict[str, str],
    agent: Any,
) -> Optional[str]:
    module = loader.load(path)
    if module is None:
        raise FileNotFoundError(f"Command file disappeared: {path}")
    run = getattr(module, "run", None)
    if not callable(run):
        raise TypeError(f"Command file has no callable `run`: {path}")
    result = run(args, ctx, agent)
    if inspect.isawaitable(result):
        result = await result
    return result if isinstance(result, str) else None


def parse_frontmatter(content: str) -> dict[str, str]:
    match = FRONTMATTER_PATTERN.match(content.replace("\r\n", "\n"))
    if not match:
        return {}
    meta = {}
    for line in match.group(1).split("\n"):
        key, sep, value = line.partition(":")
        if sep and key.strip():
            meta[key.strip()] = value.strip()
    return meta


def list_skills(skills_dir: str | Path) -> list[SkillEntry]:
    root = Path(skills_dir)
    if not root.is_dir():
        return []
    skills = []
    for skill_dir in sorted(path for path in root.iterdir() if path.is_dir()):
        skill_file = skill_dir / SKILL_FILE
        try:
            content = skill_file.read_text(encoding="utf-8")
        except OSError:
            continue
        meta = parse_frontmatter(content)
        skills.append(
            SkillEntry(
                name=meta.get("name") or skill_dir.name,
                description=meta.get("description", ""),
                file_path=str(skill_file),
            )
        )
    return skills
