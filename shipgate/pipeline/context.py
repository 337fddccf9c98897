"""Pipeline run context.

This module defines a small, serializable state object owned by the pipeline
runner: the aggregate outcome, one record per stage, checkpoints and the
degradation events raised by advisory stages.

Only stable primitives are serialized. Tool reports live in the artifact store
and are published separately at finalization.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from shipgate.pipeline.artifacts import ArtifactStore
from shipgate.pipeline.outcome import BuildOutcome


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


STAGE_STATUSES = ("passed", "failed", "degraded", "skipped", "aborted")


@dataclass
class RunContext:
    """Serializable state passed to every stage action."""

    workspace: Path
    reports_dir: Path
    run_id: str = field(default_factory=lambda: uuid4().hex)
    created_at: str = field(default_factory=_utc_now_iso)

    outcome: BuildOutcome = BuildOutcome.SUCCESS
    abort_reason: Optional[str] = None

    stages: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    checkpoints: Dict[str, str] = field(default_factory=dict)
    degradations: List[Dict[str, Any]] = field(default_factory=list)

    artifacts: ArtifactStore = field(default_factory=ArtifactStore, repr=False)

    def degrade(self, outcome: BuildOutcome) -> BuildOutcome:
        """Fold outcome into the run status; the status never improves."""
        self.outcome = self.outcome.worse(outcome)
        return self.outcome

    @property
    def work_dir(self) -> Path:
        """Scratch directory for raw tool output, kept out of the build context."""
        path = self.reports_dir / "_work"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def mark_checkpoint(self, name: str) -> None:
        if not name.strip():
            return
        self.checkpoints[name] = _utc_now_iso()

    def record_stage(
        self,
        name: str,
        *,
        kind: str,
        status: str,
        started_at: Optional[str] = None,
        finished_at: Optional[str] = None,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        if status not in STAGE_STATUSES:
            raise ValueError(f"Unknown stage status: {status}")

        record: Dict[str, Any] = {
            "kind": kind,
            "status": status,
            "started_at": started_at,
            "finished_at": finished_at,
            "result": result,
            "error": error,
            "reason": reason,
        }
        self.stages[name] = record
        return record

    def stage_status(self, name: str) -> Optional[str]:
        rec = self.stages.get(name)
        if rec is None:
            return None
        return rec.get("status")

    def to_payload(self) -> Dict[str, Any]:
        return {
            "schema_version": "1.0",
            "run_id": self.run_id,
            "created_at": self.created_at,
            "workspace": str(self.workspace),
            "reports_dir": str(self.reports_dir),
            "outcome": self.outcome.value,
            "abort_reason": self.abort_reason,
            "stages": {k: dict(v) for k, v in self.stages.items()},
            "checkpoints": dict(self.checkpoints),
            "degradations": list(self.degradations),
            "artifacts": self.artifacts.names(),
        }

    def write_json(self, path: Path) -> None:
        import json

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(self.to_payload(), indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )

