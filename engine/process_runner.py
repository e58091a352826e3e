from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
from typing import Optional, Protocol

from schemas.engine_types import ExecutionResult

logger = logging.getLogger(__name__)

# Single stream-json lines can carry whole file contents.
STREAM_LIMIT = 16 * 1024 * 1024
READ_CHUNK = 64 * 1024


class StreamDecoder(Protocol):
    line_oriented: bool
    progress_events: int
    skipped_lines: int

    def feed(self, data: str) -> None: ...

    def finish(self, exit_code: int, stderr: str) -> ExecutionResult: ...


async def _collect_stderr(stream: asyncio.StreamReader, label: str, log: logging.Logger) -> str:
    lines: list[str] = []
    async for raw in stream:
        chunk = raw.decode(errors="replace").strip()
        if chunk:
            lines.append(chunk)
            log.debug(f"{label} stderr: {chunk}")
    return "\n".join(lines)


async def _pump_stdout(stream: asyncio.StreamReader, decoder: StreamDecoder) -> None:
    if decoder.line_oriented:
        async for raw in stream:
            decoder.feed(raw.decode(errors="replace"))
        return

    text_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        chunk = await stream.read(READ_CHUNK)
        if not chunk:
            break
        decoder.feed(text_decoder.decode(chunk))
    tail = text_decoder.decode(b"", final=True)
    if tail:
        decoder.feed(tail)


async def run_process(
    argv: list[str],
    cwd: str,
    decoder: StreamDecoder,
    label: str,
    env: Optional[dict[str, str]] = None,
    log: Optional[logging.Logger] = None,
) -> tuple[ExecutionResult, Optional[int]]:
    """Run one CLI invocation to completion and decode its output.

    Returns the decoded result and the exit code (``None`` when the process
    never started). Spawn errors come back as a failure result naming the
    command instead of raising. If the awaiting task is cancelled the child
    is killed and reaped before the cancellation propagates.
    """
    log = log or logger
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=cwd,
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=STREAM_LIMIT,
        )
    except (OSError, ValueError) as exc:
        # ValueError: argv the OS cannot take, e.g. a NUL byte in the prompt.
        log.error(f"{label} process error: {exc}")
        return ExecutionResult(success=False, error_text=f"Failed to start {argv[0]}: {exc}"), None

    stderr_task = asyncio.create_task(_collect_stderr(proc.stderr, label, log))
    try:
        try:
            await _pump_stdout(proc.stdout, decoder)
        except ValueError as exc:
            # A line beyond STREAM_LIMIT; stop decoding but still let the process finish.
            log.warning(f"{label} output line too long, ignoring remaining output: {exc}")
            decoder.skipped_lines += 1
            while await proc.stdout.read(READ_CHUNK):
                pass
        exit_code = await proc.wait()
        stderr = await stderr_task
    finally:
        # A live child here means the call was interrupted, usually by cancellation.
        if proc.returncode is None:
            log.warning(f"{label} call interrupted, killing process {proc.pid}")
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
        if not stderr_task.done():
            stderr_task.cancel()
    return decoder.finish(exit_code, stderr), exit_code
