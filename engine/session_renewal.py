from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from engine.adapters.base import CliAdapter
from engine.agent import Agent
from engine.errors import AgentCallError
from engine.project_context import ProjectContext
from engine.session_store import SessionStore
from schemas.engine_types import ResetMode

PASSIVE_RENEWAL_REPLY = "New session started."
RENEWAL_FAILED_REPLY = "Failed to start new session. Please try again."


@dataclass
class RenewalOutcome:
    success: bool
    reply: str
    error: Optional[str] = None


async def renew_session(
    adapter: CliAdapter,
    project: ProjectContext,
    store: SessionStore,
    user_id: int | str,
) -> RenewalOutcome:
    store.clear(user_id)
    project.logger.info(f"Session data cleared for user {user_id}")

    if adapter.reset_mode is not ResetMode.ACTIVE:
        return RenewalOutcome(success=True, reply=PASSIVE_RENEWAL_REPLY)

    # The CLI only knows "continue the last session"; a fresh call is what starts a new one.
    agent = Agent(adapter, project)
    try:
        reply = await agent.call(project.config.engine_session_msg, continue_session=False)
    except AgentCallError as exc:
        project.logger.error(f"Session renewal engine call failed: {exc}")
        return RenewalOutcome(success=False, reply=RENEWAL_FAILED_REPLY, error=str(exc))
    return RenewalOutcome(success=True, reply=reply)
