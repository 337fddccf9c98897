"""Adapters for the external collaborators a pipeline stage wraps.

Each adapter builds a fixed command line, runs it once through
shipgate.tools.process and turns the exit status and report files into a
StageResult.
"""

from shipgate.tools.process import ToolResult, run_tool

__all__ = ["ToolResult", "run_tool"]
