#!/usr/bin/env python3
"""Run the DevSecOps pipeline from a checkout of this repository.

This wrapper lets the automation server call the runner without installing
the package first. See shipgate.cli for flags and exit codes.
"""

from __future__ import annotations

import sys
from pathlib import Path


ROOT_DIR = Path(__file__).resolve().parents[1]
root_str = str(ROOT_DIR)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from shipgate.cli import main  # noqa: E402


if __name__ == "__main__":
    raise SystemExit(main())
