import json

import pytest

from shipgate.scanning.gates import (
    ReportError,
    VulnerabilityGateConfig,
    VulnerabilityGateError,
    check_vulnerability_gate,
    enforce_vulnerability_gate,
    summarize_vulnerability_report,
)


def _write_report(path, severities_by_target):
    results = []
    for target, severities in severities_by_target.items():
        results.append(
            {
                "Target": target,
                "Vulnerabilities": None if severities is None else [{"VulnerabilityID": f"CVE-{i}", "Severity": s} for i, s in enumerate(severities)],
            }
        )
    path.write_text(json.dumps({"ArtifactName": "registry.local/app:1", "Results": results}), encoding="utf-8")
    return path


@pytest.mark.unit
def test_summarize_counts_by_severity(tmp_path):
    report = _write_report(
        tmp_path / "scan.json",
        {
            "debian 12": ["CRITICAL", "HIGH", "HIGH", "low"],
            "app/requirements.txt": ["CRITICAL", "BOGUS"],
            "usr/bin/empty": None,
        },
    )

    summary = summarize_vulnerability_report(report)

    assert summary["artifact"] == "registry.local/app:1"
    assert summary["counts"] == {"CRITICAL": 2, "HIGH": 2, "MEDIUM": 0, "LOW": 1, "UNKNOWN": 1}
    assert summary["total"] == 6
    assert summary["by_target"] == {"app/requirements.txt": 2, "debian 12": 4}


@pytest.mark.unit
def test_empty_results_is_zero(tmp_path):
    report = tmp_path / "scan.json"
    report.write_text(json.dumps({"Results": None}), encoding="utf-8")

    assert summarize_vulnerability_report(report)["total"] == 0


@pytest.mark.unit
def test_summarize_missing_report_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        summarize_vulnerability_report(tmp_path / "nope.json")


@pytest.mark.unit
@pytest.mark.parametrize("content", ["{not json", "[1, 2]", json.dumps({"Results": "bad"})])
def test_unreadable_report_raises_report_error(tmp_path, content):
    report = tmp_path / "scan.json"
    report.write_text(content, encoding="utf-8")

    with pytest.raises(ReportError):
        summarize_vulnerability_report(report)


@pytest.mark.unit
def test_gate_downgrades_when_critical_above_threshold(tmp_path):
    report = _write_report(tmp_path / "scan.json", {"debian 12": ["CRITICAL", "CRITICAL", "CRITICAL"]})

    result = check_vulnerability_gate(report_path=report)

    assert result["ok"] is True
    assert result["action"] == "downgrade"
    assert result["critical"] == 3
    assert result["max_critical"] == 0


@pytest.mark.unit
def test_gate_passes_within_threshold(tmp_path):
    report = _write_report(tmp_path / "scan.json", {"debian 12": ["CRITICAL", "HIGH"]})

    result = check_vulnerability_gate(report_path=report, config=VulnerabilityGateConfig(max_critical=1))

    assert result["action"] == "pass"
    assert result["counts"]["HIGH"] == 1


@pytest.mark.unit
def test_gate_missing_report_is_not_a_breach(tmp_path):
    result = check_vulnerability_gate(report_path=tmp_path / "scan.json")

    assert result["ok"] is True
    assert result["action"] == "missing"
    assert result["report_present"] is False


@pytest.mark.unit
def test_gate_disabled_is_permissive(tmp_path):
    report = _write_report(tmp_path / "scan.json", {"debian 12": ["CRITICAL"]})

    result = check_vulnerability_gate(report_path=report, config=VulnerabilityGateConfig(enabled=False))

    assert result["action"] == "disabled"
    assert result["ok"] is True


@pytest.mark.unit
def test_enforce_blocks_in_block_mode(tmp_path):
    report = _write_report(tmp_path / "scan.json", {"debian 12": ["CRITICAL"]})
    cfg = VulnerabilityGateConfig(on_failure="block")

    assert check_vulnerability_gate(report_path=report, config=cfg)["ok"] is False
    with pytest.raises(VulnerabilityGateError, match="1 critical"):
        enforce_vulnerability_gate(report_path=report, config=cfg)


@pytest.mark.unit
def test_enforce_downgrade_mode_does_not_raise(tmp_path):
    report = _write_report(tmp_path / "scan.json", {"debian 12": ["CRITICAL"]})

    result = enforce_vulnerability_gate(report_path=report)

    assert result["action"] == "downgrade"


@pytest.mark.unit
def test_negative_max_critical_is_clamped_to_zero(tmp_path):
    report = _write_report(tmp_path / "scan.json", {"debian 12": ["CRITICAL"]})

    cfg = VulnerabilityGateConfig(max_critical=-4)
    result = enforce_vulnerability_gate(report_path=report, config=cfg)

    assert cfg.max_critical == 0
    assert result["max_critical"] == 0
    assert result["action"] == "downgrade"
