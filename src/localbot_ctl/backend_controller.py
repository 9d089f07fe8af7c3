"""Backend lifecycle control through the external switch script.

The script owns the GPU-resident inference backend:

  <script> status --json   -> one JSON object (BackendStatus shape)
  <script> switch <target> -> progress text, non-zero exit + stderr on failure
  <script> stop            -> same contract as switch
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import math
from typing import Protocol

from pydantic import ValidationError

from .models import BackendStatus, ControlResult, GpuMemory

logger = logging.getLogger(__name__)

SWITCH_TARGETS = ("llama-cpp", "vllm")

DEFAULT_STATUS_TIMEOUT = 15.0
DEFAULT_SWITCH_TIMEOUT = 180.0


class ControllerError(RuntimeError):
    """The switch script could not be run or exited unsuccessfully."""


class BackendControl(Protocol):
    async def status(self) -> BackendStatus: ...

    async def switch(self, target: str) -> ControlResult: ...

    async def stop(self) -> ControlResult: ...


class ScriptBackendController:
    """Runs the switch script as a subprocess, one bounded call per operation."""

    def __init__(
        self,
        script_path: str,
        *,
        workdir: str | None = None,
        status_timeout: float = DEFAULT_STATUS_TIMEOUT,
        switch_timeout: float = DEFAULT_SWITCH_TIMEOUT,
        stop_timeout: float = DEFAULT_SWITCH_TIMEOUT,
    ):
        self._script_path = script_path
        self._workdir = workdir or None
        self._status_timeout = status_timeout
        self._switch_timeout = switch_timeout
        self._stop_timeout = stop_timeout

    @property
    def script_path(self) -> str:
        return self._script_path

    async def _run(self, args: list[str], timeout: float) -> str:
        """Run the script and return stdout; raise ControllerError on any failure."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self._script_path,
                *args,
                cwd=self._workdir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ControllerError(e.strerror or type(e).__name__) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError as e:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise ControllerError(f"timed out after {timeout:g}s") from e

        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            raise ControllerError(detail or f"exit code {proc.returncode}")
        return stdout.decode(errors="replace")

    async def status(self) -> BackendStatus:
        """Current backend state; any failure degrades to BackendStatus.unknown()."""
        try:
            output = await self._run(["status", "--json"], self._status_timeout)
            payload = json.loads(output.strip())
            return BackendStatus.model_validate(payload)
        except (ControllerError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("Backend status unavailable: %s", e)
            return BackendStatus.unknown()

    async def switch(self, target: str) -> ControlResult:
        if target not in SWITCH_TARGETS:
            return ControlResult(
                success=False,
                output=f"Unsupported backend '{target}' (expected one of: {', '.join(SWITCH_TARGETS)})",
            )
        logger.info("Switching backend to %s", target)
        try:
            output = await self._run(["switch", target], self._switch_timeout)
        except ControllerError as e:
            logger.warning("Backend switch to %s failed: %s", target, e)
            return ControlResult(success=False, output=str(e) or "switch failed")
        return ControlResult(success=True, output=output.strip())

    async def stop(self) -> ControlResult:
        logger.info("Stopping active backend")
        try:
            output = await self._run(["stop"], self._stop_timeout)
        except ControllerError as e:
            logger.warning("Backend stop failed: %s", e)
            return ControlResult(success=False, output=str(e) or "stop failed")
        return ControlResult(success=True, output=output.strip())


def format_gpu_memory(gpus: list[GpuMemory] | None) -> str:
    """Compact per-GPU usage, e.g. ``GPU0: 50% | GPU1: 12%``."""
    if not gpus:
        return "unknown"
    parts = []
    for gpu in gpus:
        pct = int(math.floor(gpu.used_mib / gpu.total_mib * 100 + 0.5)) if gpu.total_mib else 0
        parts.append(f"GPU{gpu.id}: {pct}%")
    return " | ".join(parts)
