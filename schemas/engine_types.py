from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from schemas.messages import IncomingMessage

ProgressSink = Callable[[str], Any]


class EngineName(str, Enum):
    CLAUDE = "claude"
    COPILOT = "copilot"
    CODEX = "codex"
    OPENCODE = "opencode"
    CURSOR = "cursor"
    ANTIGRAVITY = "antigravity"


class ResetMode(str, Enum):
    # Fresh session by omitting the continuation flag.
    PASSIVE = "passive"
    # CLI keeps its own "last session"; a renewal call is needed to start over.
    ACTIVE = "active"


class Usage(BaseModel):
    cost_usd: Optional[float] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None


class ExecutionRequest(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    prompt_text: str
    # The CLI process is spawned here; callers pass the project cwd.
    working_directory: str
    session_id: Optional[str] = None
    progress_sink: Optional[ProgressSink] = None
    # None means "not explicitly disabled"; only False opts out of continuation.
    continue_session: Optional[bool] = None
    files_outbox_path: Optional[str] = None
    message: Optional[IncomingMessage] = None


class ExecutionResult(BaseModel):
    success: bool
    output_text: str = ""
    session_id: Optional[str] = None
    error_text: Optional[str] = None
    usage: Optional[Usage] = None

    @model_validator(mode="after")
    def _failure_carries_error(self) -> "ExecutionResult":
        if not self.success and not (self.error_text or "").strip():
            self.error_text = "An unknown error occurred"
        return self


class ParsedResponse(BaseModel):
    text: str
    session_id: Optional[str] = None
    usage: Optional[Usage] = None


class EngineInfo(BaseModel):
    engine: EngineName
    name: str
    command: str
    model: Optional[str] = None
    reset_mode: ResetMode
    instructions_file: str
    skills_dir: str = Field(..., description="Absolute skills directory for the project")


# Engines that need an explicit model when none is configured. The rest use
# their CLI's own built-in default.
DEFAULT_ENGINE_MODELS: dict[EngineName, str] = {
    EngineName.CLAUDE: "default",
    EngineName.OPENCODE: "opencode/gpt-5-nano",
}


def default_engine_model(engine: EngineName) -> Optional[str]:
    return DEFAULT_ENGINE_MODELS.get(EngineName(engine))
