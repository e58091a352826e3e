from __future__ import annotations

from typing import Mapping, Optional

from engine.context_assembler import EngineIdentity, assemble_context
from engine.project_context import ProjectContext
from schemas.engine_types import ExecutionRequest


def render_context_prompt(mapping: Mapping[str, str], user_text: str) -> str:
    lines = "\n".join(f"- {key}: {value}" for key, value in mapping.items())
    return f"# Context\n{lines}\n\n# User Message\n{user_text}"


def outbox_instruction(outbox_path: str) -> str:
    return f"[System: To send files to the user, write them to: {outbox_path}]"


def build_prompt(
    user_text: str,
    mapping: Optional[Mapping[str, str]] = None,
    outbox_path: Optional[str] = None,
) -> str:
    prompt = render_context_prompt(mapping, user_text) if mapping is not None else user_text
    if outbox_path:
        return f"{prompt}\n\n{outbox_instruction(outbox_path)}"
    return prompt


async def build_request_prompt(
    request: ExecutionRequest,
    project: ProjectContext,
    engine: Optional[EngineIdentity] = None,
) -> str:
    # Internal one-shot calls carry no message and get the bare prompt.
    mapping = None
    if request.message is not None:
        mapping = await assemble_context(request.message, project, engine)
    return build_prompt(request.prompt_text, mapping, request.files_outbox_path)
