from __future__ import annotations

import json
import logging
from typing import Any, Optional

from engine.adapters.base import CliAdapter
from engine.project_context import ProjectContext
from engine.stream_decoder import COMMAND_PREVIEW_LIMIT, LineEventDecoder, ProgressTemplate, StreamEvent
from schemas.engine_types import EngineName, ExecutionRequest, ProgressSink, ResetMode, Usage

GEMINI_PROGRESS = {
    "read_file": ProgressTemplate("Reading: ", "path"),
    "search_files": ProgressTemplate("Searching for: ", "pattern"),
    "run_command": ProgressTemplate("Running: ", "command", COMMAND_PREVIEW_LIMIT),
    "edit_file": ProgressTemplate("Editing: ", "path"),
    "write_file": ProgressTemplate("Writing: ", "path"),
}


def _stats_usage(stats: Any) -> Optional[Usage]:
    if not isinstance(stats, dict):
        return None
    return Usage(
        input_tokens=stats.get("input_tokens", stats.get("input")),
        output_tokens=stats.get("output_tokens", stats.get("output")),
    )


def normalize_gemini_event(event: dict[str, Any]) -> list[StreamEvent]:
    kind = event.get("type")
    if kind == "init":
        session_id = event.get("sessionId") or event.get("session_id") or event.get("id")
        return [StreamEvent("session_init", session_id=session_id)]

    if kind == "tool_use":
        tool_input = event.get("args") or event.get("arguments") or {}
        if not isinstance(tool_input, dict):
            tool_input = {}
        return [StreamEvent("tool_use", tool=event.get("name") or event.get("tool") or "unknown", tool_input=tool_input)]

    if kind == "message":
        if event.get("role") not in ("assistant", "model"):
            return []
        for key in ("text", "content", "response"):
            if isinstance(event.get(key), str):
                return [StreamEvent("assistant_text", text=event[key])]
        return []

    if kind == "thought":
        return [StreamEvent("thought", text=event.get("text"))]

    if kind == "error":
        return [StreamEvent("warning", error=event.get("message") or event.get("text"))]

    if kind == "tool_result":
        output = event.get("output")
        if not isinstance(output, str):
            output = json.dumps(output if output is not None else event.get("result", ""), default=str)
        return [StreamEvent("tool_result", text=output)]

    if kind == "result":
        error = event.get("error")
        error_text = error.get("message") if isinstance(error, dict) else (str(error) if error else None)
        # The reply text comes from the preceding message events; text=None keeps it.
        return [
            StreamEvent(
                "result",
                success=event.get("status") == "success" and not error,
                error=error_text,
                usage=_stats_usage(event.get("stats")),
            )
        ]
    return []


class AntigravityAdapter(CliAdapter):
    engine = EngineName.ANTIGRAVITY
    name = "Antigravity (Gemini CLI)"
    label = "Gemini"
    default_command = "gemini"
    reset_mode = ResetMode.PASSIVE
    install_hint = "Please ensure Gemini CLI is installed and the command is in your PATH."
    skills_subdir = (".agent", "skills")
    instructions_filename = "GEMINI.md"

    def build_args(self, prompt: str, request: ExecutionRequest, project: ProjectContext) -> list[str]:
        options = project.config.antigravity
        if options.approval_mode == "yolo":
            project.logger.warning("Gemini running with --approval-mode yolo: all tool calls are auto-approved")
        args = ["-p", prompt, "--output-format", "stream-json", "--approval-mode", options.approval_mode]
        if self.model:
            args += ["--model", self.model]
        if request.session_id and self.continuation_requested(request, project):
            args += ["--resume", request.session_id]
        if options.sandbox:
            args.append("--sandbox")
        return args

    def make_decoder(self, log: logging.Logger, progress_sink: Optional[ProgressSink]) -> LineEventDecoder:
        return LineEventDecoder(normalize_gemini_event, GEMINI_PROGRESS, self.label, log, progress_sink)
