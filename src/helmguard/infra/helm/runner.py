"""Async command runner for the helm binary.

Commands run as asyncio subprocesses so a supervisor can race them against
cluster watchers. Cancelling the awaiting task terminates the process.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from .types import CommandResult


class CommandRunner:
    """Low-level command executor with consistent result handling.

    A cancelled ``run()`` sends SIGTERM to the child, waits up to
    ``termination_grace`` seconds for it to exit (helm uses that window to
    roll back an atomic release), then sends SIGKILL. The cancellation is
    re-raised once the child is gone.
    """

    def __init__(
        self,
        cwd: Path | None = None,
        termination_grace: float = 30.0,
    ) -> None:
        """Initialize the command runner.

        Args:
            cwd: Working directory for commands (defaults to the current one)
            termination_grace: Seconds between SIGTERM and SIGKILL on cancel
        """
        self.cwd = cwd
        self.termination_grace = termination_grace

    async def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path | None = None,
    ) -> CommandResult:
        """Execute a command and return a structured result.

        Args:
            cmd: Command and arguments as a sequence
            cwd: Working directory (defaults to the runner's)

        Returns:
            CommandResult with success status, output, and return code

        Raises:
            FileNotFoundError: If the executable is not installed
        """
        logger.debug(f"Running: {' '.join(cmd)}")
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=cwd or self.cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            await self._terminate(process, cmd[0])
            raise

        returncode = process.returncode or 0
        return CommandResult(
            success=returncode == 0,
            stdout=stdout.decode(errors="replace") if stdout else "",
            stderr=stderr.decode(errors="replace") if stderr else "",
            returncode=returncode,
        )

    async def _terminate(
        self,
        process: asyncio.subprocess.Process,
        name: str,
    ) -> None:
        if process.returncode is not None:
            return

        logger.info(f"Terminating {name} (pid {process.pid})")
        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=self.termination_grace)
        except TimeoutError:
            logger.warning(
                f"{name} did not exit within {self.termination_grace}s, killing it"
            )
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()
