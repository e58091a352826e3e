from __future__ import annotations

from engine.adapters.base import BufferedCliAdapter
from engine.project_context import ProjectContext
from schemas.engine_types import EngineName, ExecutionRequest


class CopilotAdapter(BufferedCliAdapter):
    engine = EngineName.COPILOT
    name = "GitHub Copilot"
    label = "Copilot"
    default_command = "copilot"
    install_hint = "Please ensure GitHub Copilot CLI is installed and the command is in your PATH."
    progress_message = "Copilot is responding..."

    def build_args(self, prompt: str, request: ExecutionRequest, project: ProjectContext) -> list[str]:
        args = ["-p", prompt, "--allow-all"]
        if self.model:
            args += ["--model", self.model]
        if self.continuation_requested(request, project):
            args.append("--continue")
        return args
