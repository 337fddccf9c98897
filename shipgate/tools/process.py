"""
External Tool Execution
=======================
Run one external tool invocation exactly once and capture its result.

A binary that is missing or cannot be started raises ToolUnavailableError so
the runner can classify it per stage kind. Non-zero exits and timeouts are
reported in ToolResult and never raise.
"""

from __future__ import annotations

import shlex
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from loguru import logger

from shipgate.config import OUTPUT
from shipgate.pipeline.stage import StageResult, ToolUnavailableError
from shipgate.utils.subprocess_env import build_minimal_subprocess_env
from shipgate.utils.subprocess_text import to_text, truncate_text


@dataclass(frozen=True)
class ToolResult:
    """Result of one external tool invocation."""

    argv: List[str]
    returncode: int
    stdout: str
    stderr: str
    duration_seconds: float
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def command(self) -> str:
        return shlex.join(self.argv)

    def to_details(self) -> Dict[str, Any]:
        limit = int(OUTPUT.MAX_CAPTURED_CHARS)
        return {
            "command": self.command,
            "returncode": self.returncode,
            "timed_out": self.timed_out,
            "duration_seconds": round(self.duration_seconds, 3),
            "stdout": truncate_text(self.stdout, limit),
            "stderr": truncate_text(self.stderr, limit),
        }

    def to_stage_result(self, *, ok_codes: Sequence[int] = (0,), message: str = "") -> StageResult:
        """Translate exit status into a stage result.

        The exit code travels as StageResult.returncode, not inside details.
        """

        details = self.to_details()
        details.pop("returncode", None)

        if self.timed_out:
            return StageResult.failed(
                message or f"{self.argv[0]} timed out after {self.duration_seconds:.0f}s",
                returncode=self.returncode,
                **details,
            )
        if self.returncode not in ok_codes:
            return StageResult.failed(
                message or f"{self.argv[0]} exited with code {self.returncode}",
                returncode=self.returncode,
                **details,
            )
        return StageResult(ok=True, message=message, returncode=self.returncode, details=details)


def _redact(argv: Sequence[str], secrets: Sequence[str]) -> str:
    text = shlex.join(list(argv))
    for secret in secrets:
        if secret:
            text = text.replace(secret, "****")
    return text


def run_tool(
    argv: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    timeout_seconds: Optional[int] = None,
    env: Optional[Mapping[str, str]] = None,
    input_text: Optional[str] = None,
    sanitize_env: bool = True,
    secrets: Sequence[str] = (),
) -> ToolResult:
    """Execute an external tool once.

    Args:
        argv: Command and arguments; argv[0] is looked up on PATH.
        cwd: Working directory for the tool.
        timeout_seconds: Kill the tool after this many seconds.
        env: Extra environment variables for this call.
        input_text: Text passed on stdin (for example a registry password).
        sanitize_env: When True, avoid inheriting most parent env vars.
        secrets: Values masked in log output.

    Raises:
        ToolUnavailableError: When the binary is missing or cannot be executed.
    """

    args = [str(a) for a in argv]
    if not args:
        raise ValueError("argv must not be empty")

    if cwd is not None and not Path(cwd).is_dir():
        raise ToolUnavailableError(args[0], f"Working directory does not exist: {cwd}")

    logger.info("Running: {}", _redact(args, secrets))

    started = time.monotonic()
    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout_seconds,
            cwd=str(cwd) if cwd is not None else None,
            env=build_minimal_subprocess_env(sanitize_env=sanitize_env, extra=env),
            input=input_text,
            stdin=None if input_text is not None else subprocess.DEVNULL,
            close_fds=True,
        )
    except FileNotFoundError:
        raise ToolUnavailableError(args[0], f"Tool not found on PATH: {args[0]}")
    except PermissionError as e:
        raise ToolUnavailableError(args[0], f"Tool cannot be executed: {args[0]}: {e}")
    except subprocess.TimeoutExpired as e:
        stderr = to_text(e.stderr)
        if stderr:
            stderr = stderr.rstrip("\n") + "\n"
        stderr += f"Execution timed out after {timeout_seconds} seconds"
        logger.error("{} timed out after {}s", args[0], timeout_seconds)
        return ToolResult(
            argv=args,
            returncode=-1,
            stdout=to_text(e.stdout),
            stderr=stderr,
            duration_seconds=time.monotonic() - started,
            timed_out=True,
        )

    duration = time.monotonic() - started
    tool_result = ToolResult(
        argv=args,
        returncode=int(result.returncode),
        stdout=result.stdout or "",
        stderr=result.stderr or "",
        duration_seconds=duration,
    )
    if tool_result.success:
        logger.debug("{} finished in {:.1f}s", args[0], duration)
    else:
        logger.warning("{} exited with code {} after {:.1f}s", args[0], tool_result.returncode, duration)
    return tool_result
