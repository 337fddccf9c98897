"""Command-line entrypoint for a pipeline run.

Exit code behavior:
- 0: SUCCESS, or UNSTABLE without --fail-on-unstable
- 1: FAILURE, or a usage/config error
- 2: UNSTABLE with --fail-on-unstable
- 130: ABORTED
"""

from __future__ import annotations

import argparse
import json
import signal
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from shipgate.config import PipelineSettings
from shipgate.pipeline.outcome import BuildOutcome
from shipgate.pipeline.runner import PipelineRunner
from shipgate.pipeline.stage import PipelineAborted
from shipgate.pipeline.stages import build_default_stages

EXIT_CODES = {
    BuildOutcome.SUCCESS: 0,
    BuildOutcome.UNSTABLE: 0,
    BuildOutcome.FAILURE: 1,
    BuildOutcome.ABORTED: 130,
}


def exit_code_for(outcome: BuildOutcome, *, fail_on_unstable: bool = False) -> int:
    if outcome == BuildOutcome.UNSTABLE and fail_on_unstable:
        return 2
    return EXIT_CODES[outcome]


def load_settings(config_path: Optional[str]) -> PipelineSettings:
    """Read settings from a JSON file; environment defaults fill the gaps."""

    if not config_path:
        return PipelineSettings()

    path = Path(config_path).expanduser()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValueError(f"Cannot read config {path}: {type(e).__name__}: {e}")

    if not isinstance(raw, dict):
        raise ValueError(f"Config {path} must be a JSON object")
    return PipelineSettings.from_mapping(raw)


def _install_abort_handler(runner: PipelineRunner) -> None:
    def _on_sigterm(signum: int, frame: Any) -> None:
        reason = f"received signal {signal.Signals(signum).name}"
        runner.abort(reason)
        if runner.interruptible:
            raise PipelineAborted(reason)

    signal.signal(signal.SIGTERM, _on_sigterm)


def _print_summary(runner: PipelineRunner) -> None:
    ctx = runner.context
    print("\n" + "=" * 60)
    print(f"PIPELINE {ctx.outcome.value}")
    print("=" * 60)
    for name, record in ctx.stages.items():
        line = f"  {name:<20} {record.get('kind', ''):<9} {record.get('status', '')}"
        if record.get("reason"):
            line += f"  ({record['reason']})"
        print(line)
    if ctx.degradations:
        print("\nDegradations:")
        for evt in ctx.degradations:
            print(f"  - [{evt.get('stage')}] {evt.get('reason_code')}: {evt.get('message')}")
    print(f"\nReports: {ctx.reports_dir}")
    print("=" * 60)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run the DevSecOps build pipeline")
    parser.add_argument("--config", help="JSON file with pipeline settings")
    parser.add_argument("--workspace", help="Checkout directory (overrides config)")
    parser.add_argument("--reports-dir", help="Directory for published reports (overrides config)")
    parser.add_argument(
        "--fail-on-unstable",
        action="store_true",
        help="Exit with code 2 when the build is UNSTABLE (default: exit 0)",
    )
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ValueError as e:
        logger.error("{}", e)
        return 1

    overrides: Dict[str, Any] = {}
    if args.workspace:
        overrides["workspace"] = Path(args.workspace)
    if args.reports_dir:
        overrides["reports_dir"] = Path(args.reports_dir)
    if overrides:
        settings = replace(settings, **overrides)

    workspace = Path(settings.workspace).expanduser().resolve()
    reports_dir = Path(settings.reports_dir).expanduser().resolve()
    settings = replace(settings, workspace=workspace, reports_dir=reports_dir)

    runner = PipelineRunner(
        workspace=workspace,
        reports_dir=reports_dir,
        run_timeout_seconds=settings.run_timeout_seconds,
    )
    _install_abort_handler(runner)

    outcome = runner.run(build_default_stages(settings))
    _print_summary(runner)

    return exit_code_for(outcome, fail_on_unstable=bool(args.fail_on_unstable))


if __name__ == "__main__":
    raise SystemExit(main())
