from __future__ import annotations

from typing import Optional

from engine.adapters.base import CliAdapter
from engine.errors import AgentCallError
from engine.project_context import ProjectContext
from schemas.engine_types import ExecutionRequest, ProgressSink


class Agent:
    """One-shot engine calls for internal callers (commands, session renewal).

    Calls carry no message and no session id, so they never see the
    per-message context or the user's stored session.
    """

    def __init__(self, adapter: CliAdapter, project: ProjectContext):
        self.adapter = adapter
        self.project = project

    async def call(
        self,
        prompt: str,
        on_progress: Optional[ProgressSink] = None,
        continue_session: Optional[bool] = None,
    ) -> str:
        request = ExecutionRequest(
            prompt_text=prompt,
            working_directory=self.project.config.cwd,
            progress_sink=on_progress,
            continue_session=continue_session,
        )
        result = await self.adapter.execute(request, self.project)
        if not result.success:
            raise AgentCallError(result.error_text or "Agent call failed")
        return self.adapter.parse(result).text
