from __future__ import annotations

import asyncio
import logging
import re
import subprocess
from dataclasses import dataclass, field
from typing import Optional

BOOT_SHELL_TIMEOUT = 10.0
MESSAGE_SHELL_TIMEOUT = 5.0

# #{cmd}: evaluated once per process and cached. @{cmd}: evaluated on every message.
BOOT_SHELL_PATTERN = re.compile(r"#\{([^}]+)\}")
MESSAGE_SHELL_PATTERN = re.compile(r"@\{([^}]+)\}")

logger = logging.getLogger(__name__)


def run_shell(
    command: str,
    timeout: float = BOOT_SHELL_TIMEOUT,
    log: Optional[logging.Logger] = None,
) -> str:
    log = log or logger
    try:
        completed = subprocess.run(
            command,
            shell=True,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        log.warning(f"Shell command timed out after {timeout}s, substituting empty string: {command}")
        return ""
    except OSError as exc:
        log.warning(f"Shell command failed to start, substituting empty string: {command} ({exc})")
        return ""

    if completed.returncode != 0:
        log.warning(
            f"Shell command exited with code {completed.returncode}, substituting empty string: "
            f"{command} ({(completed.stderr or '').strip()})"
        )
        return ""
    return (completed.stdout or "").strip()


async def run_shell_async(
    command: str,
    timeout: float = MESSAGE_SHELL_TIMEOUT,
    log: Optional[logging.Logger] = None,
) -> str:
    log = log or logger
    try:
        proc = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        log.warning(f"Shell command failed to start, substituting empty string: {command} ({exc})")
        return ""

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        log.warning(f"Shell command timed out after {timeout}s, substituting empty string: {command}")
        return ""

    if proc.returncode != 0:
        log.warning(
            f"Shell command exited with code {proc.returncode}, substituting empty string: "
            f"{command} ({stderr.decode(errors='replace').strip()})"
        )
        return ""
    return stdout.decode(errors="replace").strip()


def has_boot_placeholder(value: str) -> bool:
    return bool(BOOT_SHELL_PATTERN.search(value or ""))


def has_message_placeholder(value: str) -> bool:
    return bool(MESSAGE_SHELL_PATTERN.search(value or ""))


def evaluate_boot_placeholders(value: str, log: Optional[logging.Logger] = None) -> str:
    return BOOT_SHELL_PATTERN.sub(lambda match: run_shell(match.group(1), BOOT_SHELL_TIMEOUT, log), value)


async def evaluate_message_placeholders(value: str, log: Optional[logging.Logger] = None) -> str:
    parts: list[str] = []
    last = 0
    for match in MESSAGE_SHELL_PATTERN.finditer(value):
        parts.append(value[last : match.start()])
        parts.append(await run_shell_async(match.group(1), MESSAGE_SHELL_TIMEOUT, log))
        last = match.end()
    parts.append(value[last:])
    return "".join(parts)


@dataclass
class BootContext:
    """Boot-time shell results for one project, built once at start-up.

    Only declared keys whose value contains a ``#{...}`` placeholder are
    cached; every message reuses these values instead of re-running the
    command.
    """

    shell_cache: dict[str, str] = field(default_factory=dict)

    @classmethod
    def evaluate(cls, declared: dict[str, str], log: Optional[logging.Logger] = None) -> "BootContext":
        cache: dict[str, str] = {}
        for key, value in declared.items():
            if has_boot_placeholder(value):
                cache[key] = evaluate_boot_placeholders(value, log)
        return cls(shell_cache=cache)

    def value_for(self, key: str, declared_value: str) -> str:
        return self.shell_cache.get(key, declared_value)
