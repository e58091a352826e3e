from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Optional

from schemas.engine_types import ExecutionResult, ProgressSink, Usage

logger = logging.getLogger(__name__)

NO_RESPONSE = "No response received"
TOOL_RESULT_LOG_LIMIT = 500
COMMAND_PREVIEW_LIMIT = 50

EventKind = Literal[
    "session_init",
    "assistant_text",
    "tool_use",
    "tool_result",
    "thought",
    "warning",
    "result",
]


@dataclass
class StreamEvent:
    kind: EventKind
    text: Optional[str] = None
    session_id: Optional[str] = None
    tool: Optional[str] = None
    tool_input: dict[str, Any] = field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None
    usage: Optional[Usage] = None


EventNormalizer = Callable[[dict[str, Any]], list[StreamEvent]]


@dataclass(frozen=True)
class ProgressTemplate:
    prefix: str
    key: str
    limit: Optional[int] = None

    def render(self, tool_input: dict[str, Any]) -> Optional[str]:
        value = tool_input.get(self.key)
        if not value:
            return None
        text = str(value)
        if self.limit is not None and len(text) > self.limit:
            text = text[: self.limit] + "..."
        return f"{self.prefix}{text}"


def progress_message(templates: dict[str, ProgressTemplate], tool: str, tool_input: dict[str, Any]) -> str:
    template = templates.get(tool)
    rendered = template.render(tool_input) if template else None
    return rendered or f"Using {tool}..."


# Progress sinks are fire-and-forget; keep a reference so pending tasks are not collected.
_pending_progress: set[asyncio.Future] = set()


def _progress_done(task: asyncio.Future) -> None:
    _pending_progress.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(f"Progress sink failed: {exc}")


def emit_progress(sink: Optional[ProgressSink], message: str, log: Optional[logging.Logger] = None) -> None:
    if sink is None:
        return
    try:
        outcome = sink(message)
    except Exception as exc:
        (log or logger).warning(f"Progress sink failed: {exc}")
        return
    if inspect.isawaitable(outcome):
        task = asyncio.ensure_future(outcome)
        _pending_progress.add(task)
        task.add_done_callback(_progress_done)


def truncate_for_log(value: Any, limit: int = TOOL_RESULT_LOG_LIMIT) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    if len(text) >= limit:
        return text[:limit] + "..."
    return text


class LineEventDecoder:
    """Decodes line-delimited JSON events into an ``ExecutionResult``.

    The CLI-specific ``normalizer`` maps each raw event to zero or more
    ``StreamEvent``s; everything after that is shared. A terminal ``result``
    event wins over whatever text or session id was seen before it.
    """

    line_oriented = True

    def __init__(
        self,
        normalizer: EventNormalizer,
        progress_templates: dict[str, ProgressTemplate],
        label: str,
        log: Optional[logging.Logger] = None,
        progress_sink: Optional[ProgressSink] = None,
    ):
        self.normalizer = normalizer
        self.progress_templates = progress_templates
        self.label = label
        self.log = log or logger
        self.progress_sink = progress_sink

        self.last_assistant_text = ""
        self.current_session_id: Optional[str] = None
        self.last_result: Optional[ExecutionResult] = None
        self.progress_events = 0
        self.skipped_lines = 0

    def feed(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        try:
            raw = json.loads(line)
        except json.JSONDecodeError:
            # CLIs interleave plain diagnostic lines with the event stream.
            self.skipped_lines += 1
            return
        if not isinstance(raw, dict):
            self.skipped_lines += 1
            return
        for event in self.normalizer(raw):
            self.apply(event)

    def apply(self, event: StreamEvent) -> None:
        if event.kind == "session_init":
            if event.session_id:
                self.current_session_id = event.session_id
        elif event.kind == "assistant_text":
            if event.text:
                self.last_assistant_text = event.text
        elif event.kind == "tool_use":
            tool = event.tool or "unknown"
            message = progress_message(self.progress_templates, tool, event.tool_input)
            self.log.info(f"{message} (tool={tool})")
            self.progress_events += 1
            emit_progress(self.progress_sink, message, self.log)
        elif event.kind == "tool_result":
            self.log.info(f"Tool result: {truncate_for_log(event.text or '')}")
        elif event.kind == "thought":
            self.log.debug(f"{self.label} thought: {event.text}")
        elif event.kind == "warning":
            self.log.warning(f"{self.label} error event: {event.error or event.text}")
        elif event.kind == "result":
            self.last_result = ExecutionResult(
                success=event.success,
                output_text=self.last_assistant_text if event.text is None else event.text,
                session_id=event.session_id or self.current_session_id,
                error_text=None if event.success else event.error,
                usage=event.usage,
            )

    def finish(self, exit_code: int, stderr: str) -> ExecutionResult:
        self.log.debug(f"{self.label} process closed with code {exit_code}")
        if self.last_result is not None:
            if not self.last_result.success:
                self.log.error(
                    f"{self.label} returned error: {self.last_result.error_text} (stderr: {stderr.strip()})"
                )
            return self.last_result
        if exit_code == 0:
            return ExecutionResult(
                success=True,
                output_text=self.last_assistant_text or NO_RESPONSE,
                session_id=self.current_session_id,
            )
        self.log.error(f"{self.label} process failed with code {exit_code}: {stderr.strip()}")
        return ExecutionResult(
            success=False,
            output_text=self.last_assistant_text,
            error_text=stderr.strip() or f"{self.label} exited with code {exit_code}",
        )


class BufferedTextDecoder:
    """Collects plain stdout and reports a fixed progress line per chunk."""

    line_oriented = False

    def __init__(
        self,
        label: str,
        progress_message: Optional[str] = None,
        log: Optional[logging.Logger] = None,
        progress_sink: Optional[ProgressSink] = None,
    ):
        self.label = label
        self.progress_message = progress_message
        self.log = log or logger
        self.progress_sink = progress_sink
        self.chunks: list[str] = []
        self.progress_events = 0
        self.skipped_lines = 0

    def feed(self, chunk: str) -> None:
        self.chunks.append(chunk)
        if chunk.strip() and self.progress_message:
            self.progress_events += 1
            emit_progress(self.progress_sink, self.progress_message, self.log)

    def finish(self, exit_code: int, stderr: str) -> ExecutionResult:
        output = "".join(self.chunks)
        self.log.debug(f"{self.label} process closed with code {exit_code}")
        if exit_code == 0:
            return ExecutionResult(success=True, output_text=output.strip() or NO_RESPONSE)
        self.log.error(f"{self.label} process failed with code {exit_code}: {stderr.strip()}")
        return ExecutionResult(
            success=False,
            output_text=output.strip(),
            error_text=stderr.strip() or f"{self.label} exited with code {exit_code}",
        )
