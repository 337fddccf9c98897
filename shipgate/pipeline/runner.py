"""Pipeline runner.

Runs an ordered list of stages strictly one after another and aggregates a
single build outcome:

- a BLOCKING stage failure sets FAILURE and halts the run;
- an ADVISORY stage failure or threshold breach sets UNSTABLE and the run goes on;
- an external abort (signal, deadline) sets ABORTED and skips what is left.

Finalization (artifact publication, degradation summary, context file) runs
exactly once per run, whatever the outcome.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from loguru import logger

from shipgate.config import OUTPUT
from shipgate.pipeline.context import RunContext
from shipgate.pipeline.degradation import make_degradation_event, write_degradation_summary
from shipgate.pipeline.outcome import BuildOutcome
from shipgate.pipeline.stage import PipelineAborted, Stage, StageResult, ToolUnavailableError
from shipgate.tracing import run_span, safe_set_span_attributes, stage_span


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class PipelineRunner:
    """Sequential stage runner with a monotonic build outcome."""

    def __init__(
        self,
        *,
        workspace: Path,
        reports_dir: Path,
        run_timeout_seconds: int = 0,
        context: Optional[RunContext] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.context = context or RunContext(workspace=Path(workspace), reports_dir=Path(reports_dir))
        self.run_timeout_seconds = max(0, int(run_timeout_seconds or 0))
        self._clock = clock
        self._deadline: Optional[float] = None
        self._abort_reason: Optional[str] = None
        # True only while stages run; an external signal may interrupt a stage then
        self.interruptible = False

    def abort(self, reason: str = "aborted by automation server") -> None:
        """Request an abort; remaining stages are skipped, finalization still runs."""
        if self._abort_reason is None:
            self._abort_reason = reason
            logger.warning("Abort requested: {}", reason)

    def _pending_abort(self) -> Optional[str]:
        if self._abort_reason is not None:
            return self._abort_reason
        if self._deadline is not None and self._clock() >= self._deadline:
            self._abort_reason = f"run timeout of {self.run_timeout_seconds}s exceeded"
            return self._abort_reason
        return None

    def run(self, stages: Sequence[Stage]) -> BuildOutcome:
        """Run stages in order and return the final build outcome."""

        ctx = self.context
        stage_list: List[Stage] = list(stages)
        names = [s.name for s in stage_list]
        if len(set(names)) != len(names):
            raise ValueError(f"Stage names must be unique: {names}")

        if self.run_timeout_seconds:
            self._deadline = self._clock() + self.run_timeout_seconds

        with run_span(ctx.run_id, names) as span:
            ctx.mark_checkpoint("start")
            logger.info("Pipeline run {} started with {} stage(s)", ctx.run_id, len(stage_list))

            index = 0
            self.interruptible = True
            try:
                while index < len(stage_list):
                    reason = self._pending_abort()
                    if reason is not None:
                        self._mark_aborted(reason)
                        break

                    halt = self._run_stage(stage_list[index])
                    index += 1
                    if halt:
                        self._skip_remaining(
                            stage_list[index:],
                            reason=f"halted after blocking failure in '{stage_list[index - 1].name}'",
                        )
                        break

                # An abort or deadline that lands during the last stage still counts
                reason = self._pending_abort()
                if reason is not None and ctx.outcome != BuildOutcome.ABORTED:
                    self._mark_aborted(reason)
            except (PipelineAborted, KeyboardInterrupt) as e:
                reason = getattr(e, "reason", None) or self._abort_reason or "interrupted"
                self._abort_reason = self._abort_reason or reason
                self._mark_aborted(reason)
            finally:
                self.interruptible = False
                if ctx.outcome == BuildOutcome.ABORTED:
                    self._skip_remaining(stage_list[index:], reason=f"aborted: {ctx.abort_reason}")
                ctx.mark_checkpoint("end")
                self.finalize()

            safe_set_span_attributes(span, {"pipeline.outcome": ctx.outcome.value})

        logger.info("Pipeline run {} finished: {}", ctx.run_id, ctx.outcome.value)
        return ctx.outcome

    def _mark_aborted(self, reason: str) -> None:
        ctx = self.context
        if ctx.abort_reason is None:
            ctx.abort_reason = reason
        ctx.degrade(BuildOutcome.ABORTED)
        logger.error("Pipeline aborted: {}", reason)

    def _skip_remaining(self, stages: Sequence[Stage], *, reason: str) -> None:
        for stage in stages:
            if stage.name in self.context.stages:
                continue
            self.context.record_stage(stage.name, kind=stage.kind.value, status="skipped", reason=reason)
            logger.info("Stage '{}' not run: {}", stage.name, reason)

    def _run_stage(self, stage: Stage) -> bool:
        """Run one stage and fold its result into the outcome.

        Returns:
            True when the run must halt (blocking failure).
        """

        ctx = self.context

        with stage_span(stage.name, stage.kind.value) as span:
            started_at = _utc_now_iso()

            error: Optional[str] = None
            result: Optional[StageResult] = None
            reason_code = stage.reason_code or f"{stage.name}_failed"

            try:
                should_run = stage.should_run(ctx)
            except Exception as e:
                should_run = True
                error = f"run condition failed: {type(e).__name__}: {e}"
                result = StageResult.failed(error)

            if not should_run:
                ctx.record_stage(
                    stage.name,
                    kind=stage.kind.value,
                    status="skipped",
                    started_at=started_at,
                    finished_at=_utc_now_iso(),
                    reason=stage.skip_reason,
                )
                logger.warning("Skipping stage '{}': {}", stage.name, stage.skip_reason)
                safe_set_span_attributes(span, {"stage.status": "skipped"})
                return False

            if result is None:
                logger.info("Stage '{}' ({}) started", stage.name, stage.kind.value)
                try:
                    raw = stage.action(ctx)
                    if raw is None:
                        result = StageResult.passed()
                    elif isinstance(raw, StageResult):
                        result = raw
                    else:
                        error = f"stage action returned {type(raw).__name__}, expected StageResult"
                        result = StageResult.failed(error)
                except ToolUnavailableError as e:
                    error = f"{type(e).__name__}: {e}"
                    result = StageResult.failed(str(e), tool=e.tool)
                    reason_code = "tool_unavailable"
                except (PipelineAborted, KeyboardInterrupt) as e:
                    ctx.record_stage(
                        stage.name,
                        kind=stage.kind.value,
                        status="aborted",
                        started_at=started_at,
                        finished_at=_utc_now_iso(),
                        reason=getattr(e, "reason", None) or "interrupted",
                    )
                    safe_set_span_attributes(span, {"stage.status": "aborted"})
                    raise
                except Exception as e:
                    error = f"{type(e).__name__}: {e}"
                    result = StageResult.failed(error)

            finished_at = _utc_now_iso()
            halt = False

            if not result.ok:
                status = "failed"
                if stage.is_blocking:
                    ctx.degrade(BuildOutcome.FAILURE)
                    halt = True
                    logger.error("Blocking stage '{}' failed: {}", stage.name, result.message or error)
                else:
                    ctx.degrade(BuildOutcome.UNSTABLE)
                    self._record_degradation(stage, result, reason_code=reason_code)
                    logger.warning("Advisory stage '{}' failed: {}", stage.name, result.message or error)
            elif result.degraded:
                status = "degraded"
                ctx.degrade(BuildOutcome.UNSTABLE)
                self._record_degradation(stage, result, reason_code=stage.reason_code or f"{stage.name}_threshold_breached")
                logger.warning("Stage '{}' breached its threshold: {}", stage.name, result.message)
            else:
                status = "passed"
                logger.info("Stage '{}' passed", stage.name)

            ctx.record_stage(
                stage.name,
                kind=stage.kind.value,
                status=status,
                started_at=started_at,
                finished_at=finished_at,
                result=result.to_dict(),
                error=error,
            )
            safe_set_span_attributes(
                span,
                {
                    "stage.status": status,
                    "stage.returncode": result.returncode,
                    "pipeline.outcome": ctx.outcome.value,
                },
            )
            return halt

    def _record_degradation(self, stage: Stage, result: StageResult, *, reason_code: str) -> None:
        reason_code = str(result.details.get("reason_code") or reason_code)
        details = {k: v for k, v in result.details.items() if k != "reason_code"}
        if result.returncode is not None:
            details["returncode"] = result.returncode
        self.context.degradations.append(
            make_degradation_event(
                stage=stage.name,
                reason_code=reason_code,
                message=result.message or f"Stage '{stage.name}' degraded the build.",
                recommended_action=stage.recommended_action,
                severity="warning",
                details=details or None,
            )
        )

    def finalize(self) -> None:
        """Publish artifacts and write run metadata.

        Each step is attempted independently; failures are logged and never
        change the build outcome.
        """

        ctx = self.context
        ctx.mark_checkpoint("finalized")

        try:
            ctx.artifacts.publish(ctx.reports_dir, run_id=ctx.run_id)
        except Exception:
            logger.exception("Failed to publish artifacts for run_id='{}'", ctx.run_id)

        try:
            write_degradation_summary(
                reports_dir=ctx.reports_dir,
                run_id=ctx.run_id,
                outcome=ctx.outcome.value,
                degradations=list(ctx.degradations),
                created_at=ctx.created_at.replace("+00:00", "Z"),
            )
        except Exception:
            logger.exception("Failed to write degradation summary for run_id='{}'", ctx.run_id)

        try:
            ctx.write_json(ctx.reports_dir / OUTPUT.CONTEXT_FILENAME)
        except Exception:
            logger.exception("Failed to write run context for run_id='{}'", ctx.run_id)


def run_pipeline(
    stages: Sequence[Stage],
    *,
    workspace: Path,
    reports_dir: Path,
    run_timeout_seconds: int = 0,
) -> RunContext:
    """Run stages with a fresh runner and return the run context."""

    runner = PipelineRunner(
        workspace=workspace,
        reports_dir=reports_dir,
        run_timeout_seconds=run_timeout_seconds,
    )
    runner.run(stages)
    return runner.context
