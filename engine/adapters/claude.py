from __future__ import annotations

import json
import logging
from typing import Any, Optional

from engine.adapters.base import CliAdapter
from engine.project_context import ProjectContext
from engine.stream_decoder import (
    COMMAND_PREVIEW_LIMIT,
    NO_RESPONSE,
    LineEventDecoder,
    ProgressTemplate,
    StreamEvent,
)
from schemas.engine_types import (
    EngineName,
    ExecutionRequest,
    ExecutionResult,
    ParsedResponse,
    ProgressSink,
    ResetMode,
    Usage,
)

CLAUDE_PROGRESS = {
    "Read": ProgressTemplate("Reading: ", "file_path"),
    "Grep": ProgressTemplate("Searching for: ", "pattern"),
    "Glob": ProgressTemplate("Finding files: ", "pattern"),
    "Bash": ProgressTemplate("Running: ", "command", COMMAND_PREVIEW_LIMIT),
    "Edit": ProgressTemplate("Editing: ", "file_path"),
    "Write": ProgressTemplate("Writing: ", "file_path"),
    "WebSearch": ProgressTemplate("Searching web: ", "query"),
    "WebFetch": ProgressTemplate("Fetching: ", "url"),
}


def _content_blocks(event: dict[str, Any]) -> list[dict[str, Any]]:
    message = event.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if not isinstance(content, list):
        return []
    return [block for block in content if isinstance(block, dict)]


def _result_usage(event: dict[str, Any]) -> Optional[Usage]:
    usage = event.get("usage") if isinstance(event.get("usage"), dict) else {}
    cost = event.get("total_cost_usd", event.get("cost_usd"))
    if cost is None and not usage:
        return None
    return Usage(
        cost_usd=cost,
        input_tokens=usage.get("input_tokens"),
        output_tokens=usage.get("output_tokens"),
    )


def normalize_claude_event(event: dict[str, Any]) -> list[StreamEvent]:
    kind = event.get("type")
    if kind == "system" and event.get("subtype") == "init":
        return [StreamEvent("session_init", session_id=event.get("session_id"))]

    if kind == "assistant":
        events = []
        for block in _content_blocks(event):
            if block.get("type") == "text" and block.get("text"):
                events.append(StreamEvent("assistant_text", text=block["text"]))
            elif block.get("type") == "tool_use":
                tool_input = block.get("input") if isinstance(block.get("input"), dict) else {}
                events.append(StreamEvent("tool_use", tool=block.get("name") or "unknown", tool_input=tool_input))
        return events

    if kind == "user":
        events = []
        for block in _content_blocks(event):
            if block.get("type") != "tool_result":
                continue
            content = block.get("content")
            if not isinstance(content, str):
                content = json.dumps(content, default=str)
            events.append(StreamEvent("tool_result", text=content))
        return events

    if kind == "result":
        is_error = bool(event.get("is_error"))
        error = None
        if is_error:
            errors = event.get("errors") or []
            error = event.get("result") or "; ".join(str(item) for item in errors) or None
        return [
            StreamEvent(
                "result",
                text=event.get("result") or "",
                session_id=event.get("session_id"),
                success=not is_error,
                error=error,
                usage=_result_usage(event),
            )
        ]
    return []


def parse_claude_output(output: str) -> tuple[str, Optional[str], Optional[Usage]]:
    try:
        parsed = json.loads(output)
    except (json.JSONDecodeError, TypeError):
        return output or NO_RESPONSE, None, None

    if isinstance(parsed, str):
        return parsed or NO_RESPONSE, None, None
    if not isinstance(parsed, dict):
        return json.dumps(parsed, indent=2), None, None

    if parsed.get("result"):
        text = str(parsed["result"])
    elif parsed.get("message"):
        text = str(parsed["message"])
    elif parsed.get("content"):
        content = parsed["content"]
        if isinstance(content, list):
            text = "\n".join(
                block.get("text") or ""
                for block in content
                if isinstance(block, dict) and block.get("type") == "text"
            )
        else:
            text = str(content)
    else:
        text = json.dumps(parsed, indent=2)

    usage = None
    if any(key in parsed for key in ("cost_usd", "input_tokens", "output_tokens")):
        usage = Usage(
            cost_usd=parsed.get("cost_usd"),
            input_tokens=parsed.get("input_tokens"),
            output_tokens=parsed.get("output_tokens"),
        )
    return text or NO_RESPONSE, parsed.get("session_id"), usage


class ClaudeAdapter(CliAdapter):
    engine = EngineName.CLAUDE
    name = "Claude Code"
    label = "Claude"
    default_command = "claude"
    reset_mode = ResetMode.PASSIVE
    install_hint = "Please ensure Claude Code is installed and the command is in your PATH."
    instructions_filename = "CLAUDE.md"

    def build_args(self, prompt: str, request: ExecutionRequest, project: ProjectContext) -> list[str]:
        args = ["-p", prompt, "--output-format", "stream-json", "--verbose"]
        if self.model:
            args += ["--model", self.model]
        if request.session_id and self.continuation_requested(request, project):
            args += ["--resume", request.session_id]
        return args

    def make_decoder(self, log: logging.Logger, progress_sink: Optional[ProgressSink]) -> LineEventDecoder:
        return LineEventDecoder(normalize_claude_event, CLAUDE_PROGRESS, self.label, log, progress_sink)

    def parse(self, result: ExecutionResult) -> ParsedResponse:
        if not result.success:
            return super().parse(result)
        text, session_id, usage = parse_claude_output(result.output_text)
        return ParsedResponse(
            text=text,
            session_id=session_id or result.session_id,
            usage=usage or result.usage,
        )
