from __future__ import annotations

from enum import Enum

from engine.adapters.base import BufferedCliAdapter
from engine.project_context import ProjectContext
from schemas.engine_types import EngineName, ExecutionRequest
from schemas.project_config import CodexOptions


class CodexTier(str, Enum):
    YOLO = "yolo"
    FULL_DISK_ACCESS = "full-disk-access"
    NETWORK_ACCESS = "network-access"
    DEFAULT = "default"


TIER_FLAGS: dict[CodexTier, list[str]] = {
    CodexTier.YOLO: ["--dangerously-bypass-approvals-and-sandbox", "--skip-git-repo-check"],
    CodexTier.FULL_DISK_ACCESS: ["--sandbox", "danger-full-access", "--skip-git-repo-check"],
    CodexTier.NETWORK_ACCESS: [
        "--full-auto",
        "-c",
        "sandbox_workspace_write.network_access=true",
        "--skip-git-repo-check",
    ],
    CodexTier.DEFAULT: ["--full-auto", "--skip-git-repo-check"],
}


def select_tier(options: CodexOptions) -> CodexTier:
    # Most permissive flag wins; the order here is the precedence.
    if options.dangerously_enable_yolo:
        return CodexTier.YOLO
    if options.full_disk_access:
        return CodexTier.FULL_DISK_ACCESS
    if options.network_access:
        return CodexTier.NETWORK_ACCESS
    return CodexTier.DEFAULT


class CodexAdapter(BufferedCliAdapter):
    engine = EngineName.CODEX
    name = "Codex"
    label = "Codex"
    default_command = "codex"
    install_hint = "Please ensure OpenAI Codex CLI is installed and the command is in your PATH."

    def build_args(self, prompt: str, request: ExecutionRequest, project: ProjectContext) -> list[str]:
        tier = select_tier(project.config.codex)
        if tier is CodexTier.YOLO:
            project.logger.warning("Codex running with --yolo: all sandboxing and approvals disabled")

        # Permission flags must come right after "exec", before "resume" or "-C".
        args = ["exec", *TIER_FLAGS[tier]]
        if self.model:
            args += ["-m", self.model]
        if self.continuation_requested(request, project):
            args += ["resume", "--last"]
        else:
            args += ["-C", project.config.cwd]
        args.append(prompt)
        project.logger.debug(f"Codex permission tier: {tier.value}")
        return args
