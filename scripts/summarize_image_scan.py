"""Summarize an image scanner JSON report and apply the critical gate.

This helper is local/offline and intended for quick validation of a report
produced outside the pipeline.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path


def main() -> int:
    parser = argparse.ArgumentParser(description="Summarize an image vulnerability report")
    parser.add_argument("report", help="Path to the scanner JSON report")
    parser.add_argument("--max-critical", type=int, default=0)
    parser.add_argument(
        "--on-failure",
        choices=["block", "downgrade"],
        default="downgrade",
        help="Behavior when critical findings exceed the threshold (default: downgrade)",
    )

    args = parser.parse_args()

    # Allow running this script directly without requiring installation.
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

    from shipgate.scanning.gates import (
        ReportError,
        VulnerabilityGateConfig,
        VulnerabilityGateError,
        enforce_vulnerability_gate,
    )

    cfg = VulnerabilityGateConfig(
        enabled=True,
        on_failure=args.on_failure,
        max_critical=max(0, int(args.max_critical)),
    )

    try:
        result = enforce_vulnerability_gate(report_path=args.report, config=cfg)
    except VulnerabilityGateError as e:
        print(str(e))
        return 2
    except ReportError as e:
        print(str(e))
        return 1

    print(json.dumps(result, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
