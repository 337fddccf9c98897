"""Vulnerability gate.

Summarizes an image scanner JSON report into counts by severity and checks the
critical-count threshold.

Deterministic and filesystem-first:
- a missing report means there is nothing to summarize (action=missing)
- an unreadable report raises ReportError
- critical findings above max_critical breach the gate

The default policy degrades the build instead of blocking it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from loguru import logger

from shipgate.tracing import safe_set_current_span_attributes


class ReportError(ValueError):
    """Raised when a scanner report cannot be read or parsed."""


class VulnerabilityGateError(ValueError):
    """Raised when the vulnerability gate blocks execution."""


OnFailureAction = Literal["block", "downgrade"]

SEVERITY_LEVELS = ("CRITICAL", "HIGH", "MEDIUM", "LOW", "UNKNOWN")


@dataclass(frozen=True)
class VulnerabilityGateConfig:
    """Configuration for the critical-findings threshold."""

    enabled: bool = True
    on_failure: OnFailureAction = "downgrade"
    max_critical: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "max_critical", max(0, int(self.max_critical)))


def _empty_counts() -> Dict[str, int]:
    return {level: 0 for level in SEVERITY_LEVELS}


def summarize_vulnerability_report(report_path: str | Path) -> Dict[str, Any]:
    """Count findings by severity in a scanner JSON report.

    Expected shape: {"Results": [{"Target": ..., "Vulnerabilities": [{"Severity": ...}]}]}.
    A result with "Vulnerabilities": null has no findings.

    Raises:
        FileNotFoundError: When the report does not exist.
        ReportError: When the report is not valid JSON of the expected shape.
    """

    path = Path(report_path)
    if not path.is_file():
        raise FileNotFoundError(f"Vulnerability report not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ReportError(f"Unreadable vulnerability report {path.name}: {type(e).__name__}")

    if not isinstance(payload, dict):
        raise ReportError(f"Vulnerability report {path.name} must be a JSON object")

    results = payload.get("Results") or []
    if not isinstance(results, list):
        raise ReportError(f"Vulnerability report {path.name}: 'Results' must be a list")

    counts = _empty_counts()
    targets: Dict[str, int] = {}
    for result in results:
        if not isinstance(result, dict):
            continue
        vulns = result.get("Vulnerabilities") or []
        if not isinstance(vulns, list):
            continue
        target = str(result.get("Target") or "unknown")
        for vuln in vulns:
            if not isinstance(vuln, dict):
                continue
            severity = str(vuln.get("Severity") or "UNKNOWN").upper()
            if severity not in counts:
                severity = "UNKNOWN"
            counts[severity] += 1
            targets[target] = targets.get(target, 0) + 1

    return {
        "artifact": str(payload.get("ArtifactName") or ""),
        "counts": counts,
        "total": sum(counts.values()),
        "by_target": dict(sorted(targets.items())),
    }


def check_vulnerability_gate(
    *,
    report_path: str | Path,
    config: Optional[VulnerabilityGateConfig] = None,
) -> Dict[str, Any]:
    """Check the critical-count threshold against a scanner report.

    Returns a dict with keys:
    - ok (bool)
    - enabled (bool)
    - action (pass|block|downgrade|disabled|missing)
    - report_present (bool)
    - counts (dict severity -> int)
    - total (int)
    - critical (int)
    - max_critical (int)

    Raises:
        ReportError: When the report exists but cannot be parsed.
    """

    cfg = config or VulnerabilityGateConfig()
    path = Path(report_path)

    if not path.is_file():
        logger.info("Vulnerability gate: no report at {}; nothing to summarize", path)
        result: Dict[str, Any] = {
            "ok": True,
            "enabled": cfg.enabled,
            "action": "missing",
            "report_present": False,
            "counts": _empty_counts(),
            "total": 0,
            "critical": 0,
            "max_critical": cfg.max_critical,
        }
        safe_set_current_span_attributes({"gate.name": "vulnerability", "gate.action": "missing"})
        return result

    summary = summarize_vulnerability_report(path)
    counts = summary["counts"]
    critical = int(counts.get("CRITICAL", 0))

    action: Literal["pass", "block", "downgrade", "disabled"] = "pass"
    ok = True

    if not cfg.enabled:
        action = "disabled"
    elif critical > cfg.max_critical:
        if cfg.on_failure == "block":
            action = "block"
            ok = False
        else:
            action = "downgrade"

    result = {
        "ok": ok,
        "enabled": cfg.enabled,
        "action": action,
        "report_present": True,
        "counts": counts,
        "total": summary["total"],
        "critical": critical,
        "max_critical": cfg.max_critical,
        "by_target": summary["by_target"],
    }

    safe_set_current_span_attributes(
        {
            "gate.name": "vulnerability",
            "gate.enabled": bool(cfg.enabled),
            "gate.ok": bool(ok),
            "gate.action": str(action),
            "vulnerability_gate.on_failure": str(cfg.on_failure),
            "vulnerability_gate.critical": critical,
            "vulnerability_gate.high": int(counts.get("HIGH", 0)),
            "vulnerability_gate.total": int(summary["total"]),
            "vulnerability_gate.max_critical": int(cfg.max_critical),
        }
    )

    return result


def enforce_vulnerability_gate(
    *,
    report_path: str | Path,
    config: Optional[VulnerabilityGateConfig] = None,
) -> Dict[str, Any]:
    """Enforce the vulnerability gate.

    Raises:
        VulnerabilityGateError: if the gate is enabled and action=block.
    """

    result = check_vulnerability_gate(report_path=report_path, config=config)
    if result.get("enabled") and result.get("action") == "block":
        raise VulnerabilityGateError(
            f"Vulnerability gate blocked: {result['critical']} critical finding(s) > {result['max_critical']}"
        )
    return result
