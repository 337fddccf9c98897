"""Image vulnerability scan.

Produces a JSON report filtered by severity, then renders the HTML report from
that JSON without scanning the image a second time.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

from shipgate.config import TIMEOUTS, TOOLS
from shipgate.pipeline.artifacts import ArtifactStore
from shipgate.pipeline.stage import StageResult
from shipgate.tools.process import run_tool

SCAN_JSON_NAME = "image-scan.json"
SCAN_HTML_NAME = "image-scan.html"


def scan_command(image_ref: str, *, severities: Sequence[str], report_path: Path) -> List[str]:
    sev = ",".join(s.strip().upper() for s in severities if s and s.strip())
    argv = [TOOLS.TRIVY, "image", "--no-progress", "--format", "json", "--output", str(report_path)]
    if sev:
        argv += ["--severity", sev]
    # Findings are judged by the summary gate, not by the scanner exit code
    argv += ["--exit-code", "0", image_ref]
    return argv


def html_command(json_report: Path, *, template: str, html_path: Path) -> List[str]:
    return [
        TOOLS.TRIVY,
        "convert",
        "--format",
        "template",
        "--template",
        template,
        "--output",
        str(html_path),
        str(json_report),
    ]


def scan_image(
    *,
    image_ref: str,
    severities: Sequence[str],
    html_template: str,
    work_dir: Path,
    artifacts: ArtifactStore,
    stage: str = "image-scan",
    timeout_seconds: Optional[int] = None,
) -> StageResult:
    json_path = Path(work_dir) / SCAN_JSON_NAME
    html_path = Path(work_dir) / SCAN_HTML_NAME
    # Reports left by an earlier run in the same work dir must not be read or published
    json_path.unlink(missing_ok=True)
    html_path.unlink(missing_ok=True)
    artifacts.add_file(SCAN_JSON_NAME, json_path, stage=stage)
    artifacts.add_file(SCAN_HTML_NAME, html_path, stage=stage, report=True)

    timeout = int(timeout_seconds) if timeout_seconds is not None else int(TIMEOUTS.IMAGE_SCAN)

    scanned = run_tool(scan_command(image_ref, severities=severities, report_path=json_path), timeout_seconds=timeout)
    if not scanned.success:
        return scanned.to_stage_result(message=f"Vulnerability scan of {image_ref} failed")

    rendered = run_tool(html_command(json_path, template=html_template, html_path=html_path), timeout_seconds=timeout)
    if not rendered.success:
        return rendered.to_stage_result(message="Rendering the HTML vulnerability report failed")

    return StageResult.passed(
        f"Scanned {image_ref}",
        json_report=str(json_path),
        html_report=str(html_path),
    )
