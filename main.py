"""
AgentRelay service
Routes chat messages to external coding-agent CLIs with per-message context
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
import asyncio
import json
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from engine.adapters.base import CliAdapter
from engine.agent import Agent
from engine.command_loader import list_commands, list_skills, parse_slash_command, resolve_command_path, run_command
from engine.context_assembler import assemble_context
from engine.errors import UnknownEngineError
from engine.project_context import ProjectContext
from engine.registry import default_engine_model, engine_names, get_engine
from engine.session_renewal import renew_session
from engine.session_store import SessionStore
from middleware.observability import configure_logging
from schemas.engine_types import ExecutionRequest, ProgressSink, Usage
from schemas.messages import IncomingMessage
from schemas.project_config import CONFIG_FILENAME, ProjectConfig, ServiceConfig

configure_logging(os.environ.get("AGENTRELAY_LOG_LEVEL", "info"))
logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

CONFIG_PATH = Path(os.environ.get("AGENTRELAY_CONFIG", CONFIG_FILENAME))

EMPTY_MESSAGE_REPLY = "Please provide a message."
UNKNOWN_USER_DETAIL = "Could not identify user."


def sse_event(event: str, data: Dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


# =============================================================================
# CONFIGURATION
# =============================================================================

def load_config(path: Path = CONFIG_PATH) -> ServiceConfig:
    path = Path(path)
    # .env next to the config file; real environment variables win.
    load_dotenv(path.parent / ".env", override=False)
    data = json.loads(path.read_text(encoding="utf-8"))
    config = ServiceConfig.model_validate(data)
    level = os.environ.get("AGENTRELAY_LOG_LEVEL")
    if level:
        config = config.model_copy(update={"log_level": level.lower()})
    return config


@dataclass
class ProjectRuntime:
    project: ProjectContext
    adapter: CliAdapter
    sessions: SessionStore

    @property
    def slug(self) -> str:
        return self.project.config.slug

    def agent(self) -> Agent:
        return Agent(self.adapter, self.project)


def build_runtime(config: ProjectConfig, check: bool = True) -> ProjectRuntime:
    adapter = get_engine(config.engine, config.engine_command, config.engine_model)
    if check:
        # A missing CLI stops start-up for this project.
        adapter.check()
    project = ProjectContext.create(config)
    return ProjectRuntime(project=project, adapter=adapter, sessions=SessionStore(config.data_dir))


def build_runtimes(service_config: ServiceConfig, config_dir: Path, check: bool = True) -> Dict[str, ProjectRuntime]:
    built: Dict[str, ProjectRuntime] = {}
    for project_config in service_config.resolve_projects(config_dir):
        runtime = build_runtime(project_config, check=check)
        if runtime.slug in built:
            raise ValueError(f"Duplicate project slug: {runtime.slug}")
        built[runtime.slug] = runtime
        logger.info(f"Project {runtime.slug} ready: {runtime.adapter.name} ({runtime.adapter.command}) in {project_config.cwd}")
    return built


runtimes: Dict[str, ProjectRuntime] = {}


@asynccontextmanager
async def lifespan(_: FastAPI):
    if not runtimes:
        service_config = load_config(CONFIG_PATH)
        configure_logging(service_config.log_level)
        runtimes.update(build_runtimes(service_config, CONFIG_PATH.resolve().parent))
        logger.info(f"Loaded {len(runtimes)} project(s) from {CONFIG_PATH}")
    yield


app = FastAPI(lifespan=lifespan)


# =============================================================================
# REQUEST / RESPONSE MODELS
# =============================================================================

class MessageRequest(BaseModel):
    message: IncomingMessage
    continue_session: Optional[bool] = None


class MessageResponse(BaseModel):
    success: bool
    reply: str
    session_id: Optional[str] = None
    usage: Optional[Usage] = None
    command: Optional[str] = None
    files: List[str] = Field(default_factory=list)


class RenewalResponse(BaseModel):
    success: bool
    reply: str
    error: Optional[str] = None


# =============================================================================
# DISPATCH
# =============================================================================

def get_runtime(slug: str) -> ProjectRuntime:
    runtime = runtimes.get(slug)
    if runtime is None:
        raise HTTPException(status_code=404, detail=f"Unknown project: {slug}")
    return runtime


def require_user_id(message: IncomingMessage) -> int:
    if message.sender is None or message.sender.id is None:
        raise HTTPException(status_code=400, detail=UNKNOWN_USER_DETAIL)
    return message.sender.id


def outbox_files(runtime: ProjectRuntime, user_id: int) -> List[str]:
    # Reported once: collecting moves them out of the outbox.
    return [str(path) for path in runtime.sessions.collect_outbox(user_id)]


async def dispatch_command(runtime: ProjectRuntime, message: IncomingMessage) -> Optional[MessageResponse]:
    slash = parse_slash_command(message.text or "")
    if slash is None:
        return None
    config = runtime.project.config
    path = resolve_command_path(slash.name, config.cwd, config.config_dir)
    if path is None:
        # Unknown commands go to the engine as plain text.
        return None

    log = runtime.project.logger
    try:
        ctx = await assemble_context(message, runtime.project, runtime.adapter.identity())
        reply = await run_command(runtime.project.loader, path, slash.args, ctx, runtime.agent())
    except Exception as exc:
        log.error(f"Command execution failed: /{slash.name} ({path}): {exc}")
        return MessageResponse(success=False, reply=f"Command failed: {exc}", command=slash.name)
    return MessageResponse(success=True, reply=reply or "", command=slash.name)


async def dispatch_message(
    runtime: ProjectRuntime,
    message: IncomingMessage,
    progress_sink: Optional[ProgressSink] = None,
    continue_session: Optional[bool] = None,
) -> MessageResponse:
    user_id = require_user_id(message)
    log = runtime.project.logger
    log.debug(f"Message received from user {user_id} ({message.sender.username})")

    command_response = await dispatch_command(runtime, message)
    if command_response is not None:
        return command_response

    text = message.text or ""
    if not text.strip():
        return MessageResponse(success=False, reply=EMPTY_MESSAGE_REPLY)

    store = runtime.sessions
    store.ensure_user_dirs(user_id)
    session_id = store.get(user_id)
    log.debug(f"Session: {session_id or 'new'}")

    request = ExecutionRequest(
        prompt_text=text,
        working_directory=runtime.project.config.cwd,
        session_id=session_id,
        progress_sink=progress_sink,
        continue_session=continue_session,
        files_outbox_path=str(store.outbox_path(user_id)),
        message=message,
    )
    result = await runtime.adapter.execute(request, runtime.project)
    if result.session_id:
        store.save(user_id, result.session_id)
        log.debug(f"Session saved: {result.session_id}")

    parsed = runtime.adapter.parse(result)
    return MessageResponse(
        success=result.success,
        reply=parsed.text,
        session_id=parsed.session_id or result.session_id,
        usage=parsed.usage,
        files=outbox_files(runtime, user_id),
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.get("/api/engines")
async def get_engines():
    return [{"name": name, "default_model": default_engine_model(name)} for name in engine_names()]


@app.get("/api/engines/{name}")
async def get_engine_info(name: str):
    try:
        adapter = get_engine(name)
    except UnknownEngineError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {
        "name": adapter.engine.value,
        "label": adapter.name,
        "command": adapter.command,
        "reset_mode": adapter.reset_mode.value,
        "instructions_file": adapter.instructions_file(),
        "default_model": default_engine_model(adapter.engine),
    }


@app.get("/api/projects")
async def get_projects():
    return [
        {
            "slug": slug,
            "name": runtime.project.config.name or slug,
            "cwd": runtime.project.config.cwd,
            "engine": runtime.adapter.info(runtime.project.config.cwd).model_dump(mode="json"),
        }
        for slug, runtime in runtimes.items()
    ]


@app.get("/api/projects/{slug}/commands")
async def get_project_commands(slug: str):
    runtime = get_runtime(slug)
    config = runtime.project.config
    commands = list_commands(runtime.project.loader, config.cwd, config.config_dir, runtime.project.logger)
    skills = list_skills(runtime.adapter.skills_dir(config.cwd))
    return {
        "commands": [{"command": entry.command, "description": entry.description} for entry in commands],
        "skills": [{"name": skill.name, "description": skill.description} for skill in skills],
    }


@app.post("/api/projects/{slug}/messages")
async def post_message(slug: str, request: MessageRequest) -> MessageResponse:
    runtime = get_runtime(slug)
    return await dispatch_message(runtime, request.message, continue_session=request.continue_session)


@app.post("/api/projects/{slug}/messages/stream")
async def post_message_stream(slug: str, request: MessageRequest):
    runtime = get_runtime(slug)
    require_user_id(request.message)
    event_queue: asyncio.Queue = asyncio.Queue()

    async def queue_event(event: str, data: Dict[str, Any]) -> None:
        await event_queue.put((event, data))

    async def on_progress(message: str) -> None:
        await queue_event("progress", {"message": message})

    async def run_dispatch() -> None:
        try:
            response = await dispatch_message(
                runtime,
                request.message,
                progress_sink=on_progress,
                continue_session=request.continue_session,
            )
            await queue_event("done", response.model_dump(mode="json"))
        except Exception as e:
            logger.error(f"Error in message dispatch: {e}")
            await queue_event("error", {"detail": str(e)})
        finally:
            await event_queue.put(None)

    async def event_generator():
        dispatch_task = asyncio.create_task(run_dispatch())
        try:
            while True:
                item = await event_queue.get()
                if item is None:
                    break
                event, data = item
                yield sse_event(event, data)
        finally:
            if not dispatch_task.done():
                dispatch_task.cancel()

    return StreamingResponse(event_generator(), media_type="text/event-stream")


@app.post("/api/projects/{slug}/users/{user_id}/session/renew")
async def post_session_renew(slug: str, user_id: int) -> RenewalResponse:
    runtime = get_runtime(slug)
    outcome = await renew_session(runtime.adapter, runtime.project, runtime.sessions, user_id)
    return RenewalResponse(success=outcome.success, reply=outcome.reply, error=outcome.error)


@app.delete("/api/projects/{slug}/users/{user_id}")
async def delete_user_data(slug: str, user_id: int):
    runtime = get_runtime(slug)
    runtime.sessions.wipe(user_id)
    runtime.project.logger.info(f"User data cleared for user {user_id}")
    return {"status": "cleared"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=os.environ.get("AGENTRELAY_HOST", "127.0.0.1"),
        port=int(os.environ.get("AGENTRELAY_PORT", "8000")),
    )
