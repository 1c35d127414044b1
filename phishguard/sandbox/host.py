"""Isolated execution context hosts for ML inference."""

from __future__ import annotations

import asyncio
import json
import logging
import shlex
from typing import Optional, Protocol, Sequence, Union

logger = logging.getLogger(__name__)

SHUTDOWN_GRACE_SECONDS = 5.0


class SandboxError(Exception):
    """The sandbox context failed or returned an unusable response."""

    pass


class SandboxHost(Protocol):
    """Platform hooks for the single sandbox context."""

    async def has_context(self) -> bool:
        raise NotImplementedError

    async def create_context(self) -> None:
        raise NotImplementedError

    async def close_context(self) -> None:
        raise NotImplementedError

    async def send_message(self, message: dict) -> dict:
        raise NotImplementedError


class ProcessSandboxHost:
    """Runs the sandbox as a child process speaking newline-delimited JSON.

    Each `send_message` writes one JSON object on stdin and reads exactly one
    JSON object back from stdout.
    """

    def __init__(self, command: Union[str, Sequence[str]]):
        argv = shlex.split(command) if isinstance(command, str) else list(command)
        if not argv:
            raise ValueError("Sandbox command must not be empty")
        self.argv = argv
        self._process: Optional[asyncio.subprocess.Process] = None

    async def has_context(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def create_context(self) -> None:
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            self._process = None
            raise SandboxError(f"Failed to start sandbox process: {exc}") from exc
        logger.info("Sandbox process started (pid %s)", self._process.pid)

    async def close_context(self) -> None:
        process = self._process
        self._process = None
        if process is None or process.returncode is not None:
            return

        if process.stdin is not None:
            process.stdin.close()
        try:
            await asyncio.wait_for(process.wait(), timeout=SHUTDOWN_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("Sandbox process %s did not exit; killing", process.pid)
            process.kill()
            await process.wait()
        logger.info("Sandbox process stopped (exit code %s)", process.returncode)

    async def send_message(self, message: dict) -> dict:
        process = self._process
        if process is None or process.returncode is not None:
            raise SandboxError("Sandbox process is not running")
        if process.stdin is None or process.stdout is None:
            raise SandboxError("Sandbox process has no stdio pipes")

        try:
            process.stdin.write(json.dumps(message).encode("utf-8") + b"\n")
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise SandboxError(f"Sandbox process closed its input: {exc}") from exc

        line = await process.stdout.readline()
        if not line:
            raise SandboxError("Sandbox process exited without a response")
        try:
            response = json.loads(line)
        except json.JSONDecodeError as exc:
            raise SandboxError(f"Sandbox returned invalid JSON: {exc}") from exc
        if not isinstance(response, dict):
            raise SandboxError("Sandbox response is not a JSON object")
        return response
