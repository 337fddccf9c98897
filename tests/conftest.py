"""Shared fixtures for pipeline tests."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from shipgate.pipeline.context import RunContext


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws


@pytest.fixture
def reports_dir(tmp_path: Path) -> Path:
    return tmp_path / "reports"


@pytest.fixture
def run_context(workspace: Path, reports_dir: Path) -> RunContext:
    return RunContext(workspace=workspace, reports_dir=reports_dir)


class FakeProcesses:
    """Stand-in for subprocess.run that records calls and answers by rule.

    A rule matches when all of its tokens appear in the command line. The first
    matching rule wins; unmatched commands exit 0 with no output.
    """

    def __init__(self) -> None:
        self.calls: List[Dict[str, object]] = []
        self._rules: List[Dict[str, object]] = []

    def on(
        self,
        *tokens: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        raises: Optional[BaseException] = None,
        effect: Optional[Callable[[List[str]], None]] = None,
    ) -> "FakeProcesses":
        self._rules.append(
            {
                "tokens": tokens,
                "returncode": returncode,
                "stdout": stdout,
                "stderr": stderr,
                "raises": raises,
                "effect": effect,
            }
        )
        return self

    def commands(self) -> List[List[str]]:
        return [list(c["args"]) for c in self.calls]  # type: ignore[arg-type]

    def ran(self, *tokens: str) -> bool:
        return any(all(t in cmd for t in tokens) for cmd in self.commands())

    def __call__(self, args, **kwargs):
        args = [str(a) for a in args]
        self.calls.append({"args": args, "kwargs": kwargs})
        for rule in self._rules:
            if all(t in args for t in rule["tokens"]):  # type: ignore[union-attr]
                if rule["raises"] is not None:
                    raise rule["raises"]  # type: ignore[misc]
                if rule["effect"] is not None:
                    rule["effect"](args)  # type: ignore[operator]
                return subprocess.CompletedProcess(
                    args=args,
                    returncode=rule["returncode"],
                    stdout=rule["stdout"],
                    stderr=rule["stderr"],
                )
        return subprocess.CompletedProcess(args=args, returncode=0, stdout="", stderr="")


@pytest.fixture
def fake_processes(monkeypatch: pytest.MonkeyPatch) -> FakeProcesses:
    fake = FakeProcesses()
    monkeypatch.setattr("shipgate.tools.process.subprocess.run", fake)
    return fake
