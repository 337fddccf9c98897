"""Static application security testing.

The scanner is invoked with a severity threshold and asked to exit non-zero
when it reports findings at or above it. Its JSON report becomes an artifact.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

from shipgate.config import TIMEOUTS
from shipgate.pipeline.artifacts import ArtifactStore
from shipgate.pipeline.stage import StageResult
from shipgate.tools.process import run_tool

SAST_REPORT_NAME = "sast.json"

_SEVERITIES = ("INFO", "WARNING", "ERROR")


def normalize_sast_severity(value: str) -> str:
    sev = str(value or "").strip().upper()
    if sev not in _SEVERITIES:
        raise ValueError(f"SAST severity threshold must be one of {_SEVERITIES}: {value!r}")
    return sev


def sast_command(base_command: Sequence[str], *, severity_threshold: str, report_path: Path) -> List[str]:
    """Scanner command line including every severity at or above the threshold."""

    threshold = normalize_sast_severity(severity_threshold)
    argv = [str(a) for a in base_command]
    for sev in _SEVERITIES[_SEVERITIES.index(threshold):]:
        argv += ["--severity", sev]
    argv += ["--json", "--output", str(report_path), "--error"]
    return argv


def run_sast(
    *,
    base_command: Sequence[str],
    severity_threshold: str,
    workspace: Path,
    work_dir: Path,
    artifacts: ArtifactStore,
    stage: str = "sast",
    timeout_seconds: Optional[int] = None,
) -> StageResult:
    report_path = Path(work_dir) / SAST_REPORT_NAME
    report_path.unlink(missing_ok=True)
    # Registered up front so a partial report is still published on failure
    artifacts.add_file(SAST_REPORT_NAME, report_path, stage=stage)

    timeout = int(timeout_seconds) if timeout_seconds is not None else int(TIMEOUTS.SAST)
    argv = sast_command(base_command, severity_threshold=severity_threshold, report_path=report_path)
    result = run_tool(argv, cwd=Path(workspace), timeout_seconds=timeout)

    if result.success:
        return result.to_stage_result(message=f"No findings at or above {severity_threshold}")
    return result.to_stage_result(message=f"Static analysis reported findings at or above {severity_threshold} or failed")
