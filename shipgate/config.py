"""
Centralized Configuration
=========================
Centralized configuration values and constants for the shipgate pipeline.

This module provides:
- Timeout configuration for external tool invocations
- Tracing and output limits
- PipelineSettings, the per-run parameters handed to the default stages
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class TimeoutConfig:
    """Centralized timeout configuration in seconds."""

    # Source control
    CHECKOUT: int = int(os.getenv("SHIPGATE_CHECKOUT_TIMEOUT", "600"))

    # Static analysis can walk large trees
    SAST: int = int(os.getenv("SHIPGATE_SAST_TIMEOUT", "1800"))

    # Container engine
    IMAGE_BUILD: int = int(os.getenv("SHIPGATE_IMAGE_BUILD_TIMEOUT", "3600"))
    IMAGE_PUSH: int = int(os.getenv("SHIPGATE_IMAGE_PUSH_TIMEOUT", "1800"))

    # Scanners
    IMAGE_SCAN: int = int(os.getenv("SHIPGATE_IMAGE_SCAN_TIMEOUT", "1800"))
    DAST: int = int(os.getenv("SHIPGATE_DAST_TIMEOUT", "3600"))

    # Deployment
    DEPLOY: int = int(os.getenv("SHIPGATE_DEPLOY_TIMEOUT", "900"))

    # Target reachability probe before dynamic analysis
    HTTP_PROBE: int = int(os.getenv("SHIPGATE_HTTP_PROBE_TIMEOUT", "10"))


@dataclass(frozen=True)
class TracingConfig:
    """Tracing configuration."""

    SERVICE_NAME: str = "shipgate-pipeline"
    OTLP_ENDPOINT: str = os.getenv("OTLP_ENDPOINT", "http://localhost:4318/v1/traces")
    ENABLED: bool = _env_bool("SHIPGATE_ENABLE_TRACING", "false")


@dataclass(frozen=True)
class OutputConfig:
    """Limits applied to captured tool output."""

    # Characters of stdout/stderr kept per stage record
    MAX_CAPTURED_CHARS: int = int(os.getenv("SHIPGATE_MAX_CAPTURED_CHARS", "20000"))

    CONTEXT_FILENAME: str = "pipeline_context.json"
    DEGRADATION_FILENAME: str = "degradation_summary.json"
    REPORTS_INDEX_FILENAME: str = "reports.json"


@dataclass(frozen=True)
class ToolsConfig:
    """Executables for the external collaborators."""

    GIT: str = os.getenv("SHIPGATE_GIT_BIN", "git")
    DOCKER: str = os.getenv("SHIPGATE_DOCKER_BIN", "docker")
    TRIVY: str = os.getenv("SHIPGATE_TRIVY_BIN", "trivy")


# Global singleton instances
TIMEOUTS = TimeoutConfig()
TOOLS = ToolsConfig()
TRACING = TracingConfig()
OUTPUT = OutputConfig()


@dataclass(frozen=True)
class PipelineSettings:
    """Parameters for one pipeline run.

    Defaults come from SHIPGATE_* environment variables so an automation
    server can drive a run without a config file.
    """

    # Checkout
    repository_url: str = os.getenv("SHIPGATE_REPOSITORY_URL", "")
    revision: str = os.getenv("SHIPGATE_REVISION", "HEAD")
    workspace: Path = Path(os.getenv("SHIPGATE_WORKSPACE", "workspace"))

    # Static analysis
    sast_command: Tuple[str, ...] = ("semgrep", "scan", "--config", "auto")
    sast_severity_threshold: str = os.getenv("SHIPGATE_SAST_SEVERITY", "ERROR")

    # Image build and publish
    image_name: str = os.getenv("SHIPGATE_IMAGE_NAME", "")
    image_tag: str = os.getenv("SHIPGATE_IMAGE_TAG", "latest")
    registry: str = os.getenv("SHIPGATE_REGISTRY", "")
    registry_username_env: str = os.getenv("SHIPGATE_REGISTRY_USERNAME_ENV", "REGISTRY_USERNAME")
    registry_password_env: str = os.getenv("SHIPGATE_REGISTRY_PASSWORD_ENV", "REGISTRY_PASSWORD")

    # Image vulnerability scan
    scan_severities: Tuple[str, ...] = ("HIGH", "CRITICAL")
    max_critical: int = int(os.getenv("SHIPGATE_MAX_CRITICAL", "0"))
    scan_html_template: str = os.getenv("SHIPGATE_TRIVY_TEMPLATE", "@contrib/html.tpl")

    # Dynamic analysis
    dast_target_url: str = os.getenv("SHIPGATE_DAST_TARGET_URL", "")
    dast_image: str = os.getenv("SHIPGATE_DAST_IMAGE", "ghcr.io/zaproxy/zaproxy:stable")

    # Deployment
    compose_file: str = os.getenv("SHIPGATE_COMPOSE_FILE", "docker-compose.yml")
    compose_project: str = os.getenv("SHIPGATE_COMPOSE_PROJECT", "")
    compose_services: Tuple[str, ...] = field(default_factory=tuple)

    # Finalization
    reports_dir: Path = Path(os.getenv("SHIPGATE_REPORTS_DIR", "reports"))

    # External abort deadline for the whole run; 0 disables it
    run_timeout_seconds: int = int(os.getenv("SHIPGATE_RUN_TIMEOUT", "0"))

    def __post_init__(self) -> None:
        # Thresholds and deadlines below zero mean zero
        object.__setattr__(self, "max_critical", max(0, int(self.max_critical)))
        object.__setattr__(self, "run_timeout_seconds", max(0, int(self.run_timeout_seconds)))

    @property
    def image_ref(self) -> str:
        name = self.image_name
        if self.registry and not name.startswith(self.registry.rstrip("/") + "/"):
            name = f"{self.registry.rstrip('/')}/{name}"
        return f"{name}:{self.image_tag}"

    @classmethod
    def from_mapping(cls, raw: Optional[Dict[str, Any]]) -> "PipelineSettings":
        """Build settings from a JSON-like mapping.

        Unknown keys are ignored; values of the wrong shape fall back to the
        environment defaults.
        """

        defaults = cls()
        if not isinstance(raw, dict):
            return defaults

        values: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in raw:
                continue
            current = getattr(defaults, f.name)
            value = _coerce(raw[f.name], current)
            if value is not None:
                values[f.name] = value

        return cls(**{**{f.name: getattr(defaults, f.name) for f in fields(cls)}, **values})


def _coerce(value: Any, current: Any) -> Any:
    if isinstance(current, int):
        if isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
    if isinstance(current, Path):
        return Path(value) if isinstance(value, str) and value.strip() else None
    if isinstance(current, tuple):
        if isinstance(value, str):
            value = [v for v in value.replace(",", " ").split() if v]
        if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
            return tuple(value)
        return None
    if isinstance(current, str):
        return value if isinstance(value, str) else None
    return None

