"""Scanner report summarization and findings gates."""

from shipgate.scanning.gates import (
    ReportError,
    VulnerabilityGateConfig,
    VulnerabilityGateError,
    check_vulnerability_gate,
    enforce_vulnerability_gate,
    summarize_vulnerability_report,
)

__all__ = [
    "ReportError",
    "VulnerabilityGateConfig",
    "VulnerabilityGateError",
    "check_vulnerability_gate",
    "enforce_vulnerability_gate",
    "summarize_vulnerability_report",
]
