"""
Tests for Schema Validation Utilities
====================================
"""

import pytest

import shipgate.utils.schema_validation as schema_validation
from shipgate.utils.schema_validation import validate_against_schema, validate_reports_index


def _published(name="image-scan.html"):
    return {
        "name": name,
        "file": name,
        "stage": "image-scan",
        "media_type": "text/html",
        "sha256": "a" * 64,
        "size_bytes": 12,
    }


def _index(**overrides):
    payload = {
        "schema_version": "1.0",
        "run_id": "run-1",
        "artifacts": [_published()],
        "reports": [_published()],
    }
    payload.update(overrides)
    return payload


@pytest.mark.unit
def test_valid_reports_index_passes():
    validate_reports_index(_index())


@pytest.mark.unit
def test_reports_index_rejects_bad_digest():
    item = _published()
    item["sha256"] = "not-a-digest"

    with pytest.raises(ValueError, match="sha256"):
        validate_reports_index(_index(reports=[item]))


@pytest.mark.unit
def test_reports_index_requires_run_id():
    payload = _index()
    del payload["run_id"]

    with pytest.raises(ValueError, match="run_id"):
        validate_reports_index(payload)


@pytest.mark.unit
def test_unknown_schema_file_raises():
    with pytest.raises(FileNotFoundError):
        validate_against_schema({}, "no_such.schema.json")


@pytest.mark.unit
def test_schema_path_cannot_escape_directory():
    schema_validation._load_schema.cache_clear()
    with pytest.raises(ValueError, match="escapes"):
        validate_against_schema({}, "../config.py")
