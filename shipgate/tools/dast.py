"""Dynamic application security testing.

The target URL is probed first; an unreachable target is an advisory failure
rather than a scan of nothing. The baseline scanner then runs in a container
with the work directory mounted, producing JSON and HTML reports.

Baseline scanner exit codes: 0 no alerts, 1 at least one FAIL alert,
2 only WARN alerts, 3 scanner error.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

import httpx
from loguru import logger

from shipgate.config import TIMEOUTS, TOOLS
from shipgate.pipeline.artifacts import ArtifactStore
from shipgate.pipeline.stage import StageResult
from shipgate.tools.process import run_tool

DAST_JSON_NAME = "dast.json"
DAST_HTML_NAME = "dast.html"

# Inside the scanner container
_CONTAINER_WORK_DIR = "/zap/wrk"


@dataclass(frozen=True)
class ProbeResult:
    reachable: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


def _is_http_url(url: str) -> bool:
    parsed = urlparse(url or "")
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def probe_target(
    url: str,
    *,
    client: Optional[httpx.Client] = None,
    timeout_seconds: Optional[int] = None,
) -> ProbeResult:
    """Check that the scan target answers HTTP at all.

    Any HTTP status counts as reachable; only transport errors do not.
    """

    if not _is_http_url(url):
        return ProbeResult(reachable=False, error=f"Not an http(s) URL: {url!r}")

    timeout = int(timeout_seconds) if timeout_seconds is not None else int(TIMEOUTS.HTTP_PROBE)
    owns_client = client is None
    http = client or httpx.Client(timeout=httpx.Timeout(timeout), follow_redirects=True)
    try:
        response = http.get(url)
        return ProbeResult(reachable=True, status_code=response.status_code)
    except (httpx.TimeoutException, httpx.RequestError) as exc:
        logger.warning("DAST target {} unreachable: {}", url, type(exc).__name__)
        return ProbeResult(reachable=False, error=f"{type(exc).__name__}: {exc}")
    finally:
        if owns_client:
            http.close()


def baseline_scan_command(*, image: str, target_url: str, work_dir: Path) -> List[str]:
    return [
        TOOLS.DOCKER,
        "run",
        "--rm",
        "--network",
        "host",
        "-v",
        f"{Path(work_dir).resolve()}:{_CONTAINER_WORK_DIR}:rw",
        image,
        "zap-baseline.py",
        "-t",
        target_url,
        "-J",
        DAST_JSON_NAME,
        "-r",
        DAST_HTML_NAME,
    ]


def run_dast(
    *,
    target_url: str,
    image: str,
    work_dir: Path,
    artifacts: ArtifactStore,
    stage: str = "dast",
    client: Optional[httpx.Client] = None,
    timeout_seconds: Optional[int] = None,
) -> StageResult:
    json_path = Path(work_dir) / DAST_JSON_NAME
    html_path = Path(work_dir) / DAST_HTML_NAME
    json_path.unlink(missing_ok=True)
    html_path.unlink(missing_ok=True)
    artifacts.add_file(DAST_JSON_NAME, json_path, stage=stage)
    artifacts.add_file(DAST_HTML_NAME, html_path, stage=stage, report=True)

    probe = probe_target(target_url, client=client)
    if not probe.reachable:
        return StageResult.failed(
            f"DAST target not reachable: {probe.error}",
            reason_code="dast_target_unreachable",
            target_url=target_url,
        )

    timeout = int(timeout_seconds) if timeout_seconds is not None else int(TIMEOUTS.DAST)
    result = run_tool(
        baseline_scan_command(image=image, target_url=target_url, work_dir=work_dir),
        timeout_seconds=timeout,
    )

    if result.success:
        return result.to_stage_result(message=f"No alerts for {target_url}")
    if result.returncode == 2 and not result.timed_out:
        details = result.to_details()
        details.pop("returncode", None)
        details["reason_code"] = "dast_warnings"
        return StageResult(
            ok=True,
            degraded=True,
            message=f"DAST reported warnings for {target_url}",
            returncode=result.returncode,
            details=details,
        )
    return result.to_stage_result(message=f"DAST reported failures or could not complete for {target_url}")
