"""External command execution and HTTP probes.

Everything the pipeline does to the outside world goes through
:class:`CommandExecutor` or :class:`HttpProber`, so the pipeline can be
exercised with fakes instead of real subprocesses and endpoints.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx

from shipwright.config import settings
from shipwright.core.exceptions import CommandError, CommandTimeoutError
from shipwright.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CommandResult:
    """Captured output of a finished command."""

    stdout: str = ""
    stderr: str = ""


class CommandExecutor:
    """Runs an external command to completion.

    Implementations return a :class:`CommandResult` on success and raise
    :class:`CommandError` on failure or :class:`CommandTimeoutError` when
    ``timeout_ms`` elapses first.
    """

    async def run(self, command: str, timeout_ms: int | None = None) -> CommandResult:
        raise NotImplementedError("Subclasses must implement run")


class ShellCommandExecutor(CommandExecutor):
    """Executes commands through the system shell."""

    def __init__(self, cwd: str | None = None, env: dict[str, str] | None = None):
        self.cwd = cwd
        self.env = env

    async def run(self, command: str, timeout_ms: int | None = None) -> CommandResult:
        logger.debug("executor.command.started", command=command, timeout_ms=timeout_ms)

        process = await asyncio.create_subprocess_shell(
            command,
            cwd=self.cwd,
            env=self.env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout_ms / 1000 if timeout_ms else None,
            )
        except asyncio.TimeoutError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            logger.warning("executor.command.timeout", command=command, timeout_ms=timeout_ms)
            raise CommandTimeoutError(command, timeout_ms or 0)

        stdout_text = stdout.decode(errors="replace") if stdout else ""
        stderr_text = stderr.decode(errors="replace") if stderr else ""

        if process.returncode != 0:
            logger.debug(
                "executor.command.failed",
                command=command,
                returncode=process.returncode,
            )
            raise CommandError(command, process.returncode, stdout_text, stderr_text)

        return CommandResult(stdout=stdout_text, stderr=stderr_text)


class HttpProber:
    """HTTP checks against the deployed application."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self._client = client
        self.timeout = timeout or settings.http_timeout_seconds

    async def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url)

    async def check(self, url: str) -> bool:
        """Return True when the endpoint answers with a 2xx status."""
        response = await self._get(url)
        return response.is_success

    async def fetch_json(self, url: str) -> Any:
        """GET ``url`` and decode its JSON body."""
        response = await self._get(url)
        response.raise_for_status()
        return response.json()
