"""Asynchronous command execution with output capture.

Provides:
- Child process execution with concurrent stdout/stderr line capture
- Console code page decoding of captured output
- Bounded waits with forced termination on timeout or cancellation
- Dry-run mode support
"""

import asyncio
import subprocess
from dataclasses import dataclass
from typing import Optional

from rich.markup import escape

from winfw.core.context import ExecutionContext


# StreamReader line limit; PowerShell can emit long lines for wide objects
STREAM_LIMIT = 1024 * 1024

# Keeps console windows from flashing when spawned from a GUI process
CREATE_NO_WINDOW = getattr(subprocess, "CREATE_NO_WINDOW", 0)


def render_command(command: list[str]) -> str:
    """Render an argument vector as the single Windows command line it becomes.

    Arguments containing whitespace or quotes are wrapped in double quotes,
    matching what CreateProcess receives.
    """
    return subprocess.list2cmdline(command)


@dataclass
class CommandResult:
    """Result of a command execution."""
    command: list[str]
    return_code: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        """Anything on the error stream is a failure; otherwise the exit code decides."""
        if self.stderr.strip():
            return False
        return self.return_code == 0

    @property
    def output(self) -> str:
        """Error stream text when present, captured stdout otherwise."""
        if self.stderr.strip():
            return self.stderr
        return self.stdout


class CommandExecutor:
    """Runs external tools without blocking the event loop.

    Both output streams are drained concurrently, line by line, so a child
    that fills one pipe while the other is being read cannot deadlock.
    Failures to spawn or read are reported as failed results and never
    raised; only cancellation propagates.
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        *,
        encoding: Optional[str] = None,
        timeout: Optional[float] = None,
        use_config_timeout: bool = True,
    ) -> None:
        """Initialize executor with context.

        Args:
            ctx: Execution context with flags
            encoding: Output code page (defaults to configured encoding)
            timeout: Default timeout in seconds
            use_config_timeout: Fall back to the configured timeout when
                ``timeout`` is None
        """
        self.ctx = ctx
        self.encoding = encoding or ctx.config.encoding
        if timeout is None and use_config_timeout:
            timeout = ctx.config.timeout
        self.timeout = timeout

    async def run(
        self,
        command: list[str],
        *,
        description: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Execute an external command.

        Args:
            command: Command as list of strings
            description: Human-readable description for logging
            timeout: Override the executor's default timeout

        Returns:
            CommandResult with decoded output
        """
        if description:
            self.ctx.console.step(description)

        cmd_display = render_command(command)
        self.ctx.console.debug(f"Running: {escape(cmd_display)}")

        if self.ctx.dry_run:
            self.ctx.console.planned(escape(cmd_display))
            return CommandResult(command=command, return_code=0, stdout="", stderr="")

        effective_timeout = timeout if timeout is not None else self.timeout

        try:
            return await self._execute(command, effective_timeout)
        except Exception as e:
            return CommandResult(
                command=command,
                return_code=-1,
                stdout="",
                stderr=str(e) or e.__class__.__name__,
            )

    async def _execute(
        self,
        command: list[str],
        timeout: Optional[float],
    ) -> CommandResult:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=STREAM_LIMIT,
            creationflags=CREATE_NO_WINDOW,
        )

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []

        tasks = [
            asyncio.ensure_future(self._drain(process.stdout, stdout_lines, "stdout")),
            asyncio.ensure_future(self._drain(process.stderr, stderr_lines, "stderr")),
            asyncio.ensure_future(process.wait()),
        ]
        completion = asyncio.gather(*tasks)

        # However the wait ends, the child is killed if still running and reaped
        try:
            if timeout is None:
                await completion
            else:
                await asyncio.wait_for(completion, timeout)
        except asyncio.TimeoutError:
            self.ctx.console.debug(f"Timed out after {timeout}s, killing process")
            return CommandResult(
                command=command,
                return_code=-1,
                stdout="\n".join(stdout_lines),
                stderr=f"Command timed out after {timeout}s",
                timed_out=True,
            )
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await self._terminate(process)

        return CommandResult(
            command=command,
            return_code=process.returncode if process.returncode is not None else -1,
            stdout="\n".join(stdout_lines),
            stderr="\n".join(line for line in stderr_lines if line.strip()),
        )

    async def _drain(
        self,
        stream: Optional[asyncio.StreamReader],
        sink: list[str],
        label: str,
    ) -> None:
        if stream is None:
            return
        while True:
            raw = await stream.readline()
            if not raw:
                break
            line = raw.decode(self.encoding, errors="replace").rstrip("\r\n")
            sink.append(line)
            self.ctx.console.debug(f"{label}: {escape(line)}")

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process) -> None:
        """Kill the child if still running and reap it."""
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()
