"""Container image build, registry login and push."""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from loguru import logger

from shipgate.config import TIMEOUTS, TOOLS
from shipgate.pipeline.stage import StageResult
from shipgate.tools.process import run_tool


def _has_repository(image_ref: str) -> bool:
    # "registry:5000/app:tag" keeps its port; only the trailing tag is split off
    repository, sep, tag = (image_ref or "").rpartition(":")
    if not sep or "/" in tag:
        repository = image_ref or ""
    return bool(repository) and not repository.endswith("/")


def build_command(image_ref: str, context_dir: Path, dockerfile: Optional[str] = None) -> List[str]:
    argv = [TOOLS.DOCKER, "build", "--pull", "-t", image_ref]
    if dockerfile:
        argv += ["-f", dockerfile]
    argv.append(str(context_dir))
    return argv


def login_command(registry: str, username: str) -> List[str]:
    argv = [TOOLS.DOCKER, "login", "--username", username, "--password-stdin"]
    if registry:
        argv.append(registry)
    return argv


def push_command(image_ref: str) -> List[str]:
    return [TOOLS.DOCKER, "push", image_ref]


def build_image(
    *,
    image_ref: str,
    context_dir: Path,
    dockerfile: Optional[str] = None,
    timeout_seconds: Optional[int] = None,
) -> StageResult:
    if not _has_repository(image_ref):
        return StageResult.failed(f"No image name configured: {image_ref!r}")

    timeout = int(timeout_seconds) if timeout_seconds is not None else int(TIMEOUTS.IMAGE_BUILD)
    result = run_tool(build_command(image_ref, context_dir, dockerfile), cwd=Path(context_dir), timeout_seconds=timeout)
    return result.to_stage_result(message=f"Built {image_ref}" if result.success else f"Image build of {image_ref} failed")


def publish_image(
    *,
    image_ref: str,
    registry: str,
    username_env: str,
    password_env: str,
    timeout_seconds: Optional[int] = None,
) -> StageResult:
    """Log in with the referenced credentials and push image_ref.

    The credential reference is a pair of environment variable names; their
    values never appear on a command line.
    """

    username = os.environ.get(username_env, "")
    password = os.environ.get(password_env, "")
    if not username or not password:
        return StageResult.failed(
            f"Registry credentials not available in ${username_env} / ${password_env}",
            registry=registry,
        )

    timeout = int(timeout_seconds) if timeout_seconds is not None else int(TIMEOUTS.IMAGE_PUSH)

    login = run_tool(
        login_command(registry, username),
        input_text=password + "\n",
        timeout_seconds=timeout,
        secrets=[password],
    )
    if not login.success:
        return login.to_stage_result(message=f"Registry login to {registry or 'default registry'} failed")

    try:
        pushed = run_tool(push_command(image_ref), timeout_seconds=timeout)
    finally:
        logout = run_tool([TOOLS.DOCKER, "logout"] + ([registry] if registry else []), timeout_seconds=timeout)
        if not logout.success:
            logger.warning("docker logout exited with code {}", logout.returncode)

    return pushed.to_stage_result(message=f"Pushed {image_ref}" if pushed.success else f"Push of {image_ref} failed")
