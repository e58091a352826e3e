from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
PROJECT_LOGGER_PREFIX = "agentrelay.project"

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return LOG_LEVELS.get(str(level).lower(), logging.INFO)


def configure_logging(level: str | int = "info") -> None:
    logging.basicConfig(
        level=resolve_level(level),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
        force=True,
    )


def project_logger(slug: str, level: str | int = "info") -> logging.Logger:
    log = logging.getLogger(f"{PROJECT_LOGGER_PREFIX}.{slug}")
    log.setLevel(resolve_level(level))
    return log


@dataclass
class InvocationMetrics:
    engine: str
    command: str
    start_time: float = field(default_factory=time.time)
    latency_ms: float = 0.0
    exit_code: Optional[int] = None
    prompt_chars: int = 0
    progress_events: int = 0
    skipped_lines: int = 0
    success: bool = False
    error: Optional[str] = None

    def to_log_dict(self) -> dict[str, Any]:
        return {
            "engine": self.engine,
            "command": self.command,
            "exit_code": self.exit_code,
            "latency_ms": round(self.latency_ms, 1),
            "prompt_chars": self.prompt_chars,
            "progress_events": self.progress_events,
            "skipped_lines": self.skipped_lines,
            "success": self.success,
            "error": self.error,
        }


class InvocationTracker:
    def __init__(self, engine: str, command: str, log: Optional[logging.Logger] = None):
        self.metrics = InvocationMetrics(engine=engine, command=command)
        self.log = log or logging.getLogger(__name__)

    @contextmanager
    def track(self):
        start = time.time()
        try:
            yield self.metrics
        except Exception as exc:
            self.metrics.success = False
            self.metrics.error = str(exc)
            raise
        finally:
            self.metrics.latency_ms = (time.time() - start) * 1000.0
            self.log.info(f"Invocation finished: {self.finalize()}")

    def finalize(self) -> dict[str, Any]:
        return self.metrics.to_log_dict()
