"""Source-control checkout."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from loguru import logger

from shipgate.config import TIMEOUTS, TOOLS
from shipgate.pipeline.stage import StageResult
from shipgate.tools.process import run_tool


def clone_command(repository_url: str, workspace: Path) -> List[str]:
    return [TOOLS.GIT, "clone", "--no-checkout", repository_url, str(workspace)]


def fetch_command(workspace: Path) -> List[str]:
    return [TOOLS.GIT, "-C", str(workspace), "fetch", "--prune", "--tags", "origin"]


def checkout_command(workspace: Path, revision: str) -> List[str]:
    return [TOOLS.GIT, "-C", str(workspace), "checkout", "--force", "--detach", revision]


def checkout_revision(
    *,
    repository_url: str,
    revision: str,
    workspace: Path,
    timeout_seconds: Optional[int] = None,
) -> StageResult:
    """Pull the requested revision into workspace.

    An existing clone is fetched and reused; otherwise the repository is cloned.
    """

    timeout = int(timeout_seconds) if timeout_seconds is not None else int(TIMEOUTS.CHECKOUT)
    workspace = Path(workspace)
    revision = (revision or "HEAD").strip() or "HEAD"
    # A local HEAD would not move after a fetch; track the remote default branch
    if revision == "HEAD":
        revision = "origin/HEAD"

    if (workspace / ".git").exists():
        fetched = run_tool(fetch_command(workspace), timeout_seconds=timeout)
        if not fetched.success:
            return fetched.to_stage_result(message=f"git fetch failed in {workspace}")
    else:
        if not repository_url:
            return StageResult.failed(f"No repository URL configured and {workspace} is not a clone")
        workspace.parent.mkdir(parents=True, exist_ok=True)
        cloned = run_tool(clone_command(repository_url, workspace), timeout_seconds=timeout)
        if not cloned.success:
            return cloned.to_stage_result(message=f"git clone of {repository_url} failed")

    checked_out = run_tool(checkout_command(workspace, revision), timeout_seconds=timeout)
    if not checked_out.success:
        return checked_out.to_stage_result(message=f"git checkout of {revision} failed")

    head = run_tool([TOOLS.GIT, "-C", str(workspace), "rev-parse", "HEAD"], timeout_seconds=timeout)
    commit = head.stdout.strip() if head.success else ""
    logger.info("Checked out {} ({})", revision, commit or "unknown commit")

    return StageResult.passed(
        f"Checked out {revision}",
        revision=revision,
        commit=commit,
        workspace=str(workspace),
    )
