from pathlib import Path

import pytest

from shipgate.config import PipelineSettings


@pytest.mark.unit
def test_from_mapping_overrides_and_coerces():
    settings = PipelineSettings.from_mapping(
        {
            "repository_url": "https://git.example/shop.git",
            "workspace": "/srv/build/shop",
            "max_critical": "2",
            "scan_severities": "MEDIUM,HIGH CRITICAL",
            "compose_services": ["web", "worker"],
            "run_timeout_seconds": 1800,
            "unknown_key": "ignored",
        }
    )

    assert settings.repository_url == "https://git.example/shop.git"
    assert settings.workspace == Path("/srv/build/shop")
    assert settings.max_critical == 2
    assert settings.scan_severities == ("MEDIUM", "HIGH", "CRITICAL")
    assert settings.compose_services == ("web", "worker")
    assert settings.run_timeout_seconds == 1800


@pytest.mark.unit
def test_from_mapping_keeps_defaults_for_wrong_shapes():
    defaults = PipelineSettings()
    settings = PipelineSettings.from_mapping(
        {
            "max_critical": True,
            "image_tag": 7,
            "workspace": "   ",
            "compose_services": ["web", 3],
            "run_timeout_seconds": "soon",
        }
    )

    assert settings.max_critical == defaults.max_critical
    assert settings.image_tag == defaults.image_tag
    assert settings.workspace == defaults.workspace
    assert settings.compose_services == defaults.compose_services
    assert settings.run_timeout_seconds == defaults.run_timeout_seconds


@pytest.mark.unit
def test_from_mapping_non_dict_returns_defaults():
    assert PipelineSettings.from_mapping(None) == PipelineSettings()


@pytest.mark.unit
@pytest.mark.parametrize(
    "registry, name, expected",
    [
        ("", "shop", "shop:1"),
        ("registry.local", "shop", "registry.local/shop:1"),
        ("registry.local/", "shop", "registry.local/shop:1"),
        ("registry.local", "registry.local/shop", "registry.local/shop:1"),
    ],
)
def test_image_ref(registry, name, expected):
    settings = PipelineSettings(registry=registry, image_name=name, image_tag="1")
    assert settings.image_ref == expected


@pytest.mark.unit
def test_negative_thresholds_are_clamped_to_zero():
    assert PipelineSettings(max_critical=-1).max_critical == 0
    assert PipelineSettings(run_timeout_seconds=-30).run_timeout_seconds == 0

    settings = PipelineSettings.from_mapping({"max_critical": -3, "run_timeout_seconds": "-5"})

    assert settings.max_critical == 0
    assert settings.run_timeout_seconds == 0
