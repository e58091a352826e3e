from __future__ import annotations

from typing import Optional, Type

from engine.adapters.antigravity import AntigravityAdapter
from engine.adapters.base import CliAdapter
from engine.adapters.claude import ClaudeAdapter
from engine.adapters.codex import CodexAdapter
from engine.adapters.copilot import CopilotAdapter
from engine.adapters.cursor import CursorAdapter
from engine.adapters.opencode import OpenCodeAdapter
from engine.errors import UnknownEngineError
from schemas.engine_types import EngineName, default_engine_model

ADAPTERS: dict[EngineName, Type[CliAdapter]] = {
    EngineName.CLAUDE: ClaudeAdapter,
    EngineName.COPILOT: CopilotAdapter,
    EngineName.CODEX: CodexAdapter,
    EngineName.OPENCODE: OpenCodeAdapter,
    EngineName.CURSOR: CursorAdapter,
    EngineName.ANTIGRAVITY: AntigravityAdapter,
}

_missing = [engine.value for engine in EngineName if engine not in ADAPTERS]
if _missing:
    raise RuntimeError(f"No adapter registered for engine(s): {', '.join(_missing)}")


def engine_names() -> list[str]:
    return [engine.value for engine in EngineName]


def get_engine(
    name: EngineName | str,
    command: Optional[str] = None,
    model: Optional[str] = None,
) -> CliAdapter:
    try:
        engine = EngineName(name)
    except ValueError:
        raise UnknownEngineError(str(name), engine_names()) from None
    return ADAPTERS[engine](command, model)


__all__ = ["ADAPTERS", "default_engine_model", "engine_names", "get_engine"]
