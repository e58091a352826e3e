from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Mapping, Optional

from engine.hook_loader import global_hook_path, project_hook_path, run_context_hook
from engine.project_context import ProjectContext
from engine.shell_evaluator import evaluate_message_placeholders, has_message_placeholder
from engine.substitution import resolve_mapping
from schemas.engine_types import EngineName, default_engine_model
from schemas.messages import IncomingMessage

FALLBACK_DEFAULT_MODEL = "engine-defaults"
LOCALTIME_PATH = Path("/etc/localtime")


@dataclass
class EngineIdentity:
    engine: EngineName
    command: str
    model: Optional[str] = None


def project_slug(cwd: str) -> str:
    slug = re.sub(r"[/\\]", "-", cwd)
    slug = re.sub(r"[^A-Za-z0-9_-]", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def message_context(message: IncomingMessage, now: Optional[datetime] = None) -> dict[str, str]:
    now = now or datetime.now(UTC)
    ts = message.date if message.date is not None else int(now.timestamp())
    sent_at = datetime.fromtimestamp(ts, UTC)
    sender = message.sender
    return {
        "bot.messageId": "" if message.message_id is None else str(message.message_id),
        "bot.timestamp": str(ts),
        "bot.datetime": sent_at.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "bot.userId": "" if sender is None or sender.id is None else str(sender.id),
        "bot.username": (sender.username if sender else None) or "",
        "bot.firstName": (sender.first_name if sender else None) or "",
        "bot.chatId": "" if message.chat_id is None else str(message.chat_id),
        "bot.messageType": message.message_type,
    }


def _format_offset(local: datetime) -> tuple[str, int, int]:
    offset = local.utcoffset()
    minutes = int(offset.total_seconds() // 60) if offset is not None else 0
    sign = "+" if minutes >= 0 else "-"
    return sign, abs(minutes) // 60, abs(minutes) % 60


def timezone_name(local: datetime, environ: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if environ is None else environ
    tz = (env.get("TZ") or "").lstrip(":")
    if tz:
        return tz
    try:
        target = os.path.realpath(LOCALTIME_PATH)
    except OSError:
        target = ""
    if "zoneinfo/" in target:
        return target.split("zoneinfo/", 1)[1]
    sign, hours, minutes = _format_offset(local)
    return f"UTC{sign}{hours:02d}:{minutes:02d}"


def system_context(
    now: Optional[datetime] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    local = (now or datetime.now(UTC)).astimezone()
    sign, hours, _ = _format_offset(local)
    date = local.strftime("%Y-%m-%d")
    clock = local.strftime("%H:%M:%S")
    return {
        "sys.datetime": f"{date} {clock} UTC{sign}{hours}",
        "sys.date": date,
        "sys.time": clock,
        "sys.ts": str(int(local.timestamp())),
        "sys.tz": timezone_name(local, environ),
    }


def project_identity_context(project: ProjectContext) -> dict[str, str]:
    config = project.config
    return {
        "project.name": config.name or config.slug,
        "project.cwd": config.cwd,
        "project.slug": project_slug(config.cwd),
    }


def engine_context(identity: EngineIdentity) -> dict[str, str]:
    keys = {
        "engine.name": identity.engine.value,
        "engine.command": identity.command,
    }
    # engine.model and engine.defaultModel are mutually exclusive.
    if identity.model:
        keys["engine.model"] = identity.model
    else:
        keys["engine.defaultModel"] = default_engine_model(identity.engine) or FALLBACK_DEFAULT_MODEL
    return keys


async def assemble_context(
    message: IncomingMessage,
    project: ProjectContext,
    engine: Optional[EngineIdentity] = None,
    now: Optional[datetime] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    log = project.logger
    merged: dict[str, str] = {}
    merged.update(message_context(message, now))
    merged.update(system_context(now, environ))
    merged.update(project_identity_context(project))
    if engine is not None:
        merged.update(engine_context(engine))

    # Root context first, then project context on top.
    for key, value in project.config.declared_context().items():
        merged[key] = project.boot_context.value_for(key, value)

    resolve_mapping(merged, environ)

    for key, value in merged.items():
        if has_message_placeholder(value):
            merged[key] = await evaluate_message_placeholders(value, log)

    global_hook = global_hook_path(project.config.config_dir)
    project_hook = project_hook_path(project.config.cwd)
    merged = await run_context_hook(project.loader, global_hook, merged, log)
    # A project living in the config directory has a single hook file.
    if project_hook.resolve() != global_hook.resolve():
        merged = await run_context_hook(project.loader, project_hook, merged, log)
    return merged
