from __future__ import annotations

from engine.adapters.base import BufferedCliAdapter
from engine.project_context import ProjectContext
from schemas.engine_types import EngineName, ExecutionRequest


class OpenCodeAdapter(BufferedCliAdapter):
    engine = EngineName.OPENCODE
    name = "OpenCode"
    label = "OpenCode"
    default_command = "opencode"
    install_hint = "Please ensure OpenCode CLI is installed and the command is in your PATH."
    progress_message = "OpenCode is responding..."
    # Keeps OpenCode from loading ~/.claude/CLAUDE.md.
    extra_env = {"OPENCODE_DISABLE_CLAUDE_CODE_PROMPT": "true"}

    def build_args(self, prompt: str, request: ExecutionRequest, project: ProjectContext) -> list[str]:
        args = ["run"]
        if self.model:
            args += ["-m", self.model]
        if self.continuation_requested(request, project):
            args.append("-c")
        args.append(prompt)
        return args
