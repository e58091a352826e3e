from __future__ import annotations

import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import ClassVar, Optional

from engine.context_assembler import EngineIdentity
from engine.errors import EngineUnavailableError
from engine.process_runner import StreamDecoder, run_process
from engine.project_context import ProjectContext
from engine.prompt_builder import build_request_prompt
from engine.stream_decoder import NO_RESPONSE, BufferedTextDecoder
from middleware.observability import InvocationTracker
from schemas.engine_types import (
    EngineInfo,
    EngineName,
    ExecutionRequest,
    ExecutionResult,
    ParsedResponse,
    ProgressSink,
    ResetMode,
)

CHECK_TIMEOUT = 30.0
DEFAULT_SKILLS_DIR = (".claude", "skills")


class CliAdapter:
    """One external coding-agent CLI.

    Subclasses describe the CLI (command, argv, output decoder, auxiliary
    file locations); spawning, prompt building and metrics live here.
    """

    engine: ClassVar[EngineName]
    name: ClassVar[str]
    label: ClassVar[str]
    default_command: ClassVar[str]
    reset_mode: ClassVar[ResetMode] = ResetMode.PASSIVE
    install_hint: ClassVar[str] = ""
    skills_subdir: ClassVar[tuple[str, ...]] = DEFAULT_SKILLS_DIR
    instructions_filename: ClassVar[str] = "AGENTS.md"
    extra_env: ClassVar[dict[str, str]] = {}

    def __init__(self, command: Optional[str] = None, model: Optional[str] = None):
        self.command = command or self.default_command
        self.model = model or None

    @property
    def command_argv(self) -> list[str]:
        return shlex.split(self.command)

    def check(self) -> None:
        try:
            subprocess.run(
                [*self.command_argv, "--version"],
                stdin=subprocess.DEVNULL,
                capture_output=True,
                timeout=CHECK_TIMEOUT,
                check=True,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as exc:
            raise EngineUnavailableError(self.label, self.command, self.install_hint) from exc

    def identity(self) -> EngineIdentity:
        return EngineIdentity(engine=self.engine, command=self.command, model=self.model)

    def info(self, project_cwd: str) -> EngineInfo:
        return EngineInfo(
            engine=self.engine,
            name=self.name,
            command=self.command,
            model=self.model,
            reset_mode=self.reset_mode,
            instructions_file=self.instructions_file(),
            skills_dir=self.skills_dir(project_cwd),
        )

    @staticmethod
    def continuation_requested(request: ExecutionRequest, project: ProjectContext) -> bool:
        return project.config.engine_session and request.continue_session is not False

    def build_args(self, prompt: str, request: ExecutionRequest, project: ProjectContext) -> list[str]:
        raise NotImplementedError

    def build_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self.extra_env)
        return env

    def make_decoder(self, log: logging.Logger, progress_sink: Optional[ProgressSink]) -> StreamDecoder:
        raise NotImplementedError

    def describe_args(self, args: list[str], prompt: str) -> list[str]:
        # The prompt can be large and carries user text; keep it out of the logs.
        return ["<prompt>" if arg == prompt else arg for arg in args]

    async def execute(self, request: ExecutionRequest, project: ProjectContext) -> ExecutionResult:
        log = project.logger
        cwd = request.working_directory
        tracker = InvocationTracker(self.engine.value, self.command, log)
        with tracker.track() as metrics:
            try:
                prompt = await build_request_prompt(request, project, self.identity())
                args = self.build_args(prompt, request, project)
                argv = [*self.command_argv, *args]
            except Exception as exc:
                log.exception(f"Failed to prepare {self.label} invocation")
                result = ExecutionResult(success=False, error_text=f"Failed to prepare {self.command}: {exc}")
                metrics.error = result.error_text
                return result

            metrics.prompt_chars = len(prompt)
            log.info(f"Executing {self.name} CLI: {self.command} {self.describe_args(args, prompt)} (cwd={cwd})")
            decoder = self.make_decoder(log, request.progress_sink)
            result, exit_code = await run_process(
                argv,
                cwd,
                decoder,
                self.label,
                env=self.build_env(),
                log=log,
            )
            metrics.exit_code = exit_code
            metrics.progress_events = decoder.progress_events
            metrics.skipped_lines = decoder.skipped_lines
            metrics.success = result.success
            metrics.error = result.error_text
        return result

    def parse(self, result: ExecutionResult) -> ParsedResponse:
        if not result.success:
            return ParsedResponse(text=result.error_text or "An unknown error occurred")
        return ParsedResponse(
            text=result.output_text or NO_RESPONSE,
            session_id=result.session_id,
            usage=result.usage,
        )

    def skills_dir(self, project_cwd: str) -> str:
        return str(Path(project_cwd).joinpath(*self.skills_subdir))

    def instructions_file(self) -> str:
        return self.instructions_filename


class BufferedCliAdapter(CliAdapter):
    reset_mode = ResetMode.ACTIVE
    progress_message: ClassVar[Optional[str]] = None

    def make_decoder(self, log: logging.Logger, progress_sink: Optional[ProgressSink]) -> BufferedTextDecoder:
        return BufferedTextDecoder(self.label, self.progress_message, log, progress_sink)
