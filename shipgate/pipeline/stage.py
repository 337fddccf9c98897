"""Stage definitions.

A stage wraps exactly one external tool call. Its kind decides what a failure
means for the run: BLOCKING failures halt the pipeline, ADVISORY failures only
degrade the outcome to UNSTABLE.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Union

if TYPE_CHECKING:
    from shipgate.pipeline.context import RunContext


class StageError(RuntimeError):
    """Raised by a stage action when its external collaborator fails."""


class ToolUnavailableError(StageError):
    """Raised when an external tool cannot be started at all."""

    def __init__(self, tool: str, message: str = ""):
        self.tool = tool
        super().__init__(message or f"Tool not available: {tool}")


class PipelineAborted(BaseException):
    """External abort signal (automation server timeout or cancellation).

    Derives from BaseException so stage code catching Exception cannot swallow it.
    """

    def __init__(self, reason: str = "aborted"):
        self.reason = reason
        super().__init__(reason)


class StageKind(str, Enum):
    BLOCKING = "BLOCKING"
    ADVISORY = "ADVISORY"


@dataclass(frozen=True)
class StageResult:
    """What a stage action reports back to the runner.

    ok=False means the tool failed. degraded=True means the tool succeeded but
    an internal threshold was breached (for example critical findings > 0).
    """

    ok: bool = True
    degraded: bool = False
    message: str = ""
    returncode: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def passed(cls, message: str = "", **details: Any) -> "StageResult":
        return cls(ok=True, message=message, details=dict(details))

    @classmethod
    def failed(cls, message: str, *, returncode: Optional[int] = None, **details: Any) -> "StageResult":
        return cls(ok=False, message=message, returncode=returncode, details=dict(details))

    @classmethod
    def breached(cls, message: str, **details: Any) -> "StageResult":
        return cls(ok=True, degraded=True, message=message, details=dict(details))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "degraded": self.degraded,
            "message": self.message,
            "returncode": self.returncode,
            "details": dict(self.details),
        }


StageAction = Callable[["RunContext"], Optional[StageResult]]
StageCondition = Callable[["RunContext"], bool]


@dataclass(frozen=True)
class Stage:
    """One discrete unit of pipeline work."""

    name: str
    action: StageAction
    kind: StageKind = StageKind.BLOCKING
    condition: Optional[StageCondition] = None
    skip_reason: str = "condition not met"
    # Reason code recorded when an advisory stage degrades the run
    reason_code: str = ""
    recommended_action: Optional[str] = None

    def __post_init__(self) -> None:
        if not str(self.name).strip():
            raise ValueError("Stage name must be a non-empty string")
        if not callable(self.action):
            raise ValueError(f"Stage action must be callable: {self.name}")

    @property
    def is_blocking(self) -> bool:
        return self.kind == StageKind.BLOCKING

    def should_run(self, context: "RunContext") -> bool:
        if self.condition is None:
            return True
        return bool(self.condition(context))


def blocking(name: str, action: StageAction, **kwargs: Any) -> Stage:
    return Stage(name=name, action=action, kind=StageKind.BLOCKING, **kwargs)


def advisory(name: str, action: StageAction, **kwargs: Any) -> Stage:
    return Stage(name=name, action=action, kind=StageKind.ADVISORY, **kwargs)


def file_exists(path: Union[str, Path, Callable[["RunContext"], Path]]) -> StageCondition:
    """Run condition: only when a (possibly context-relative) file exists."""

    def _condition(context: "RunContext") -> bool:
        p = path(context) if callable(path) else Path(path)
        return p.is_file()

    return _condition
