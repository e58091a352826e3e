from __future__ import annotations

from engine.adapters.base import BufferedCliAdapter
from engine.project_context import ProjectContext
from schemas.engine_types import EngineName, ExecutionRequest


class CursorAdapter(BufferedCliAdapter):
    engine = EngineName.CURSOR
    name = "Cursor Agent"
    label = "Cursor"
    default_command = "agent"
    install_hint = "Please ensure Cursor Agent is installed and the command is in your PATH."
    progress_message = "Cursor is responding..."
    skills_subdir = (".cursor", "rules")
    instructions_filename = ".cursorrules"

    def build_args(self, prompt: str, request: ExecutionRequest, project: ProjectContext) -> list[str]:
        args = ["--print", "--workspace", project.config.cwd, "--trust", "--force"]
        args += ["--model", self.model or "auto"]
        if self.continuation_requested(request, project):
            args.append("--continue")
        args.append(prompt)
        return args
