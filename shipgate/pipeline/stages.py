"""Default DevSecOps stage list.

checkout -> sast -> build -> publish -> image-scan -> image-scan-summary -> dast -> deploy

Checkout, build, publish and deploy are BLOCKING. The scanners and the scan
summary are ADVISORY: they can only make the build UNSTABLE.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import httpx
from loguru import logger

from shipgate.config import PipelineSettings
from shipgate.pipeline.context import RunContext
from shipgate.pipeline.stage import Stage, StageResult, advisory, blocking, file_exists
from shipgate.scanning.gates import VulnerabilityGateConfig, check_vulnerability_gate
from shipgate.tools.compose import deploy_services
from shipgate.tools.container import build_image, publish_image
from shipgate.tools.dast import run_dast
from shipgate.tools.sast import run_sast
from shipgate.tools.scm import checkout_revision
from shipgate.tools.vulnscan import SCAN_JSON_NAME, scan_image

SCAN_SUMMARY_NAME = "image-scan-summary.json"


def _scan_report_path(context: RunContext) -> Path:
    return context.work_dir / SCAN_JSON_NAME


def summarize_image_scan(context: RunContext, *, max_critical: int = 0, stage: str = "image-scan-summary") -> StageResult:
    """Turn the scanner JSON into severity counts and apply the critical threshold."""

    gate = check_vulnerability_gate(
        report_path=_scan_report_path(context),
        config=VulnerabilityGateConfig(enabled=True, on_failure="downgrade", max_critical=max_critical),
    )

    if gate["action"] == "missing":
        logger.warning("No vulnerability report to summarize")
        return StageResult.passed("Nothing to summarize", report_present=False)

    context.artifacts.add_json(SCAN_SUMMARY_NAME, gate, stage=stage)

    counts = gate["counts"]
    logger.info(
        "Image scan summary: critical={} high={} medium={} low={} unknown={}",
        counts["CRITICAL"],
        counts["HIGH"],
        counts["MEDIUM"],
        counts["LOW"],
        counts["UNKNOWN"],
    )

    if gate["action"] == "downgrade":
        return StageResult.breached(
            f"{gate['critical']} critical vulnerabilit{'y' if gate['critical'] == 1 else 'ies'} (max {gate['max_critical']})",
            counts=counts,
            critical=gate["critical"],
            max_critical=gate["max_critical"],
        )
    return StageResult.passed("Critical findings within threshold", counts=counts)


def build_default_stages(
    settings: PipelineSettings,
    *,
    http_client: Optional[httpx.Client] = None,
) -> List[Stage]:
    """Build the stage list for one run from settings."""

    workspace = Path(settings.workspace)
    image_ref = settings.image_ref

    return [
        blocking(
            "checkout",
            lambda ctx: checkout_revision(
                repository_url=settings.repository_url,
                revision=settings.revision,
                workspace=workspace,
            ),
        ),
        advisory(
            "sast",
            lambda ctx: run_sast(
                base_command=settings.sast_command,
                severity_threshold=settings.sast_severity_threshold,
                workspace=workspace,
                work_dir=ctx.work_dir,
                artifacts=ctx.artifacts,
            ),
            reason_code="sast_findings",
            recommended_action="Review sast.json and fix or triage the reported findings.",
        ),
        blocking(
            "build",
            lambda ctx: build_image(image_ref=image_ref, context_dir=workspace),
        ),
        blocking(
            "publish",
            lambda ctx: publish_image(
                image_ref=image_ref,
                registry=settings.registry,
                username_env=settings.registry_username_env,
                password_env=settings.registry_password_env,
            ),
        ),
        advisory(
            "image-scan",
            lambda ctx: scan_image(
                image_ref=image_ref,
                severities=settings.scan_severities,
                html_template=settings.scan_html_template,
                work_dir=ctx.work_dir,
                artifacts=ctx.artifacts,
            ),
            reason_code="image_scan_failed",
            recommended_action="Check scanner availability and its vulnerability database.",
        ),
        advisory(
            "image-scan-summary",
            lambda ctx: summarize_image_scan(ctx, max_critical=settings.max_critical),
            condition=file_exists(_scan_report_path),
            skip_reason=f"{SCAN_JSON_NAME} not found; nothing to summarize",
            reason_code="critical_vulnerabilities",
            recommended_action="Upgrade the affected packages or base image; see image-scan.html.",
        ),
        advisory(
            "dast",
            lambda ctx: run_dast(
                target_url=settings.dast_target_url,
                image=settings.dast_image,
                work_dir=ctx.work_dir,
                artifacts=ctx.artifacts,
                client=http_client,
            ),
            reason_code="dast_alerts",
            recommended_action="Review dast.html for the reported alerts.",
        ),
        blocking(
            "deploy",
            lambda ctx: deploy_services(
                compose_file=settings.compose_file,
                project=settings.compose_project,
                services=settings.compose_services,
                workspace=workspace,
            ),
        ),
    ]
