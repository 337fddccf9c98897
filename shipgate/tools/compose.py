"""Compose-based deployment: tear down and restart a fixed set of services."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

from shipgate.config import TIMEOUTS, TOOLS
from shipgate.pipeline.stage import StageResult
from shipgate.tools.process import run_tool


def _base(compose_file: str, project: str) -> List[str]:
    argv = [TOOLS.DOCKER, "compose", "-f", compose_file]
    if project:
        argv += ["-p", project]
    return argv


def teardown_command(compose_file: str, project: str, services: Sequence[str]) -> List[str]:
    if services:
        return _base(compose_file, project) + ["rm", "--stop", "--force", *services]
    return _base(compose_file, project) + ["down", "--remove-orphans"]


def up_command(compose_file: str, project: str, services: Sequence[str]) -> List[str]:
    return _base(compose_file, project) + ["up", "-d", "--force-recreate", *services]


def deploy_services(
    *,
    compose_file: str,
    project: str,
    services: Sequence[str],
    workspace: Path,
    timeout_seconds: Optional[int] = None,
) -> StageResult:
    if not (Path(workspace) / compose_file).is_file():
        return StageResult.failed(f"Compose file not found: {compose_file}")

    timeout = int(timeout_seconds) if timeout_seconds is not None else int(TIMEOUTS.DEPLOY)
    services = [s for s in services if s]

    down = run_tool(teardown_command(compose_file, project, services), cwd=Path(workspace), timeout_seconds=timeout)
    if not down.success:
        return down.to_stage_result(message="Tearing down services failed")

    up = run_tool(up_command(compose_file, project, services), cwd=Path(workspace), timeout_seconds=timeout)
    if not up.success:
        return up.to_stage_result(message="Starting services failed")

    deployed = ", ".join(services) if services else "all services"
    return up.to_stage_result(message=f"Deployed {deployed}")
