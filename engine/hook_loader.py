from __future__ import annotations

import hashlib
import importlib.machinery
import importlib.util
import inspect
import logging
import types
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

HOOKS_DIR = Path(".agentrelay") / "hooks"
CONTEXT_HOOK_FILE = "context.py"


def global_hook_path(config_dir: str | Path) -> Path:
    return Path(config_dir) / HOOKS_DIR / CONTEXT_HOOK_FILE


def project_hook_path(project_cwd: str | Path) -> Path:
    return Path(project_cwd) / HOOKS_DIR / CONTEXT_HOOK_FILE


class _UncachedSourceLoader(importlib.machinery.SourceFileLoader):
    # Without path stats importlib neither reads nor writes __pycache__, so an
    # edit within the same second as the previous load still takes effect.
    def path_stats(self, path):
        raise OSError(f"bytecode cache disabled for {path}")


@dataclass
class LoadedModule:
    marker: str
    module: types.ModuleType


class HotModuleLoader:
    """Loads user scripts by path and reloads them when their content changes.

    The file is re-read on every ``load``; its SHA-256 is the freshness
    marker. A matching marker returns the cached module, a different one
    evicts it and executes the new source into a fresh module object. Modules
    are never registered in ``sys.modules``, so nothing relies on the import
    cache being busted.
    """

    def __init__(self) -> None:
        self._modules: dict[str, LoadedModule] = {}
        self.executions = 0

    def load(self, path: str | Path) -> Optional[types.ModuleType]:
        file_path = Path(path).resolve()
        key = str(file_path)
        try:
            source = file_path.read_bytes()
        except FileNotFoundError:
            self.evict(key)
            return None

        marker = hashlib.sha256(source).hexdigest()
        cached = self._modules.get(key)
        if cached is not None and cached.marker == marker:
            return cached.module

        self.evict(key)
        name = f"agentrelay_script_{file_path.stem}_{marker[:12]}"
        spec = importlib.util.spec_from_file_location(name, key, loader=_UncachedSourceLoader(name, key))
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        self._modules[key] = LoadedModule(marker=marker, module=module)
        self.executions += 1
        logger.debug(f"Loaded script {key} (marker {marker[:12]})")
        return module

    def evict(self, path: str | Path) -> None:
        self._modules.pop(str(path), None)


async def run_context_hook(
    loader: HotModuleLoader,
    path: str | Path,
    context: dict[str, str],
    log: Optional[logging.Logger] = None,
) -> dict[str, str]:
    log = log or logger
    try:
        module = loader.load(path)
    except Exception as exc:
        log.error(f"Context hook failed to load, using pre-hook context: {path} ({exc})")
        return context
    if module is None:
        return context

    hook = getattr(module, "hook", None)
    if not callable(hook):
        log.error(f"Context hook has no callable `hook`, using pre-hook context: {path}")
        return context

    try:
        # The hook gets a copy so a failure halfway through cannot leak edits.
        result: Any = hook(dict(context))
        if inspect.isawaitable(result):
            result = await result
    except Exception as exc:
        log.error(f"Context hook failed, using pre-hook context: {path} ({exc})")
        return context

    if not isinstance(result, Mapping):
        log.error(f"Context hook returned {type(result).__name__}, using pre-hook context: {path}")
        return context
    return {str(key): "" if value is None else str(value) for key, value in result.items()}
