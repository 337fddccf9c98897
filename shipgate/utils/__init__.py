"""
Utility Functions
=================
Schema validation and subprocess helpers shared by the pipeline and tools.
"""

from .schema_validation import (
    validate_against_schema,
    validate_degradation_event,
    validate_degradation_summary,
    validate_reports_index,
)
from .subprocess_env import build_minimal_subprocess_env
from .subprocess_text import to_text, truncate_text

__all__ = [
    "validate_against_schema",
    "validate_degradation_event",
    "validate_degradation_summary",
    "validate_reports_index",
    "build_minimal_subprocess_env",
    "to_text",
    "truncate_text",
]
