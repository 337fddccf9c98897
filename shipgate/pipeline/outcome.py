"""Build outcome.

The outcome of a run only ever gets worse: SUCCESS < UNSTABLE < FAILURE < ABORTED.
"""

from __future__ import annotations

from enum import Enum


class BuildOutcome(str, Enum):
    """Aggregate status of a pipeline run."""

    SUCCESS = "SUCCESS"
    UNSTABLE = "UNSTABLE"
    FAILURE = "FAILURE"
    ABORTED = "ABORTED"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    def worse(self, other: "BuildOutcome") -> "BuildOutcome":
        """Return the more severe of the two outcomes."""
        return other if other.severity > self.severity else self


_SEVERITY = {
    BuildOutcome.SUCCESS: 0,
    BuildOutcome.UNSTABLE: 1,
    BuildOutcome.FAILURE: 2,
    BuildOutcome.ABORTED: 3,
}

