from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from shipgate.pipeline.outcome import BuildOutcome
from shipgate.pipeline.runner import PipelineRunner, run_pipeline
from shipgate.pipeline.stage import StageError, StageResult, ToolUnavailableError, advisory, blocking, file_exists


def _ok(calls, name):
    def _action(ctx):
        calls.append(name)
        return StageResult.passed(f"{name} ok")

    return _action


def _fail(calls, name):
    def _action(ctx):
        calls.append(name)
        return StageResult.failed(f"{name} failed", returncode=1)

    return _action


def _runner(tmp_path: Path) -> PipelineRunner:
    return PipelineRunner(workspace=tmp_path / "ws", reports_dir=tmp_path / "reports")


@pytest.mark.unit
def test_all_passing_stages_succeed(tmp_path):
    calls = []
    runner = _runner(tmp_path)

    outcome = runner.run([blocking("checkout", _ok(calls, "checkout")), advisory("sast", _ok(calls, "sast"))])

    assert outcome == BuildOutcome.SUCCESS
    assert calls == ["checkout", "sast"]
    assert runner.context.stage_status("checkout") == "passed"
    assert runner.context.degradations == []


@pytest.mark.unit
def test_advisory_failure_is_unstable_and_run_continues(tmp_path):
    calls = []
    runner = _runner(tmp_path)

    outcome = runner.run(
        [
            blocking("checkout", _ok(calls, "checkout")),
            advisory("sast", _fail(calls, "sast"), reason_code="sast_findings"),
            blocking("build", _ok(calls, "build")),
        ]
    )

    assert outcome == BuildOutcome.UNSTABLE
    assert calls == ["checkout", "sast", "build"]
    assert runner.context.stage_status("sast") == "failed"
    assert runner.context.stage_status("build") == "passed"
    assert [d["reason_code"] for d in runner.context.degradations] == ["sast_findings"]


@pytest.mark.unit
def test_blocking_failure_halts_but_finalization_runs_once(tmp_path):
    calls = []
    runner = _runner(tmp_path)

    with patch.object(runner, "finalize", wraps=runner.finalize) as finalize:
        outcome = runner.run(
            [
                blocking("checkout", _ok(calls, "checkout")),
                blocking("build", _fail(calls, "build")),
                blocking("deploy", _ok(calls, "deploy")),
            ]
        )

    assert outcome == BuildOutcome.FAILURE
    assert calls == ["checkout", "build"]
    assert finalize.call_count == 1
    assert runner.context.stage_status("deploy") == "skipped"
    assert "build" in runner.context.stages["deploy"]["reason"]
    assert (tmp_path / "reports" / "pipeline_context.json").is_file()


@pytest.mark.unit
def test_advisory_stage_cannot_push_past_unstable(tmp_path):
    runner = _runner(tmp_path)

    def _boom(ctx):
        raise RuntimeError("scanner crashed")

    outcome = runner.run([advisory("a", _boom), advisory("b", _boom)])

    assert outcome == BuildOutcome.UNSTABLE
    assert runner.context.stages["a"]["error"] == "RuntimeError: scanner crashed"


@pytest.mark.unit
def test_outcome_never_improves_after_failure(tmp_path):
    calls = []
    runner = _runner(tmp_path)

    runner.run([advisory("sast", _fail(calls, "sast")), blocking("build", _fail(calls, "build"))])

    assert runner.context.outcome == BuildOutcome.FAILURE
    runner.context.degrade(BuildOutcome.UNSTABLE)
    runner.context.degrade(BuildOutcome.SUCCESS)
    assert runner.context.outcome == BuildOutcome.FAILURE


@pytest.mark.unit
def test_threshold_breach_degrades_even_when_tool_succeeded(tmp_path):
    runner = _runner(tmp_path)

    stage = advisory(
        "image-scan-summary",
        lambda ctx: StageResult.breached("3 critical vulnerabilities", critical=3),
        reason_code="critical_vulnerabilities",
    )
    outcome = runner.run([stage])

    assert outcome == BuildOutcome.UNSTABLE
    assert runner.context.stage_status("image-scan-summary") == "degraded"
    event = runner.context.degradations[0]
    assert event["reason_code"] == "critical_vulnerabilities"
    assert event["details"]["critical"] == 3


@pytest.mark.unit
def test_unmet_condition_skips_without_affecting_outcome(tmp_path):
    calls = []
    runner = _runner(tmp_path)

    outcome = runner.run(
        [
            advisory(
                "summary",
                _fail(calls, "summary"),
                condition=file_exists(tmp_path / "missing.json"),
                skip_reason="report not found",
            ),
        ]
    )

    assert outcome == BuildOutcome.SUCCESS
    assert calls == []
    assert runner.context.stages["summary"]["status"] == "skipped"
    assert runner.context.stages["summary"]["reason"] == "report not found"


@pytest.mark.unit
def test_condition_error_counts_as_stage_failure(tmp_path):
    calls = []
    runner = _runner(tmp_path)

    def _bad_condition(ctx):
        raise OSError("permission denied")

    outcome = runner.run([blocking("checkout", _ok(calls, "checkout"), condition=_bad_condition)])

    assert outcome == BuildOutcome.FAILURE
    assert calls == []
    assert "run condition failed" in runner.context.stages["checkout"]["error"]


@pytest.mark.unit
def test_missing_tool_is_failure_for_blocking_stage(tmp_path):
    runner = _runner(tmp_path)

    def _no_docker(ctx):
        raise ToolUnavailableError("docker")

    outcome = runner.run([blocking("build", _no_docker), blocking("deploy", lambda ctx: None)])

    assert outcome == BuildOutcome.FAILURE
    assert runner.context.stage_status("deploy") == "skipped"


@pytest.mark.unit
def test_missing_tool_is_unstable_for_advisory_stage(tmp_path):
    runner = _runner(tmp_path)

    def _no_trivy(ctx):
        raise ToolUnavailableError("trivy")

    outcome = runner.run([advisory("image-scan", _no_trivy), blocking("deploy", lambda ctx: None)])

    assert outcome == BuildOutcome.UNSTABLE
    assert runner.context.stage_status("deploy") == "passed"
    assert runner.context.degradations[0]["reason_code"] == "tool_unavailable"
    assert runner.context.degradations[0]["details"]["tool"] == "trivy"


@pytest.mark.unit
def test_stage_error_in_blocking_stage_is_failure(tmp_path):
    runner = _runner(tmp_path)

    def _raise(ctx):
        raise StageError("registry rejected push")

    assert runner.run([blocking("publish", _raise)]) == BuildOutcome.FAILURE
    assert runner.context.stages["publish"]["error"] == "StageError: registry rejected push"


@pytest.mark.unit
def test_non_result_return_value_is_failure(tmp_path):
    runner = _runner(tmp_path)

    assert runner.run([blocking("weird", lambda ctx: 42)]) == BuildOutcome.FAILURE
    assert "expected StageResult" in runner.context.stages["weird"]["error"]


@pytest.mark.unit
def test_duplicate_stage_names_rejected(tmp_path):
    runner = _runner(tmp_path)
    with pytest.raises(ValueError, match="unique"):
        runner.run([blocking("a", lambda ctx: None), advisory("a", lambda ctx: None)])


@pytest.mark.unit
@pytest.mark.parametrize(
    "plan, expected",
    [
        ([], BuildOutcome.SUCCESS),
        ([("A", True)], BuildOutcome.SUCCESS),
        ([("A", False)], BuildOutcome.UNSTABLE),
        ([("A", False), ("B", False), ("A", False)], BuildOutcome.FAILURE),
        ([("B", True), ("A", False), ("A", True)], BuildOutcome.UNSTABLE),
        ([("B", False), ("A", False)], BuildOutcome.FAILURE),
    ],
)
def test_final_outcome_is_worst_contribution(tmp_path, plan, expected):
    calls = []
    stages = []
    for i, (kind, ok) in enumerate(plan):
        name = f"s{i}"
        action = _ok(calls, name) if ok else _fail(calls, name)
        stages.append(blocking(name, action) if kind == "B" else advisory(name, action))

    assert _runner(tmp_path).run(stages) == expected


@pytest.mark.unit
def test_finalization_publishes_artifacts_on_failure(tmp_path):
    runner = _runner(tmp_path)

    def _report_then_fail(ctx):
        ctx.artifacts.add_bytes("scan.html", b"<html>report</html>", stage="scan", report=True)
        return StageResult.failed("scanner exit 4", returncode=4)

    outcome = runner.run([blocking("scan", _report_then_fail)])

    assert outcome == BuildOutcome.FAILURE
    reports = tmp_path / "reports"
    assert (reports / "scan.html").read_bytes() == b"<html>report</html>"
    index = json.loads((reports / "reports.json").read_text(encoding="utf-8"))
    assert [r["name"] for r in index["reports"]] == ["scan.html"]
    summary = json.loads((reports / "degradation_summary.json").read_text(encoding="utf-8"))
    assert summary["outcome"] == "FAILURE"


@pytest.mark.unit
def test_finalization_error_does_not_change_outcome(tmp_path):
    runner = _runner(tmp_path)

    with patch.object(runner.context.artifacts, "publish", side_effect=OSError("disk full")):
        outcome = runner.run([blocking("checkout", lambda ctx: None)])

    assert outcome == BuildOutcome.SUCCESS
    assert (tmp_path / "reports" / "degradation_summary.json").is_file()
    assert (tmp_path / "reports" / "pipeline_context.json").is_file()


@pytest.mark.unit
def test_run_pipeline_returns_context(tmp_path):
    ctx = run_pipeline(
        [blocking("checkout", lambda ctx: None)],
        workspace=tmp_path / "ws",
        reports_dir=tmp_path / "reports",
    )
    assert ctx.outcome == BuildOutcome.SUCCESS
    assert "start" in ctx.checkpoints
    assert "end" in ctx.checkpoints
    assert "finalized" in ctx.checkpoints
