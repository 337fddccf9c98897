"""
Subprocess Environment Utilities
================================
Helpers for building minimal environment dictionaries for external tool calls.
"""

from __future__ import annotations

import os
from typing import Dict, Iterable, Mapping, Optional


# Variables the container engine, git and the scanners need to find their
# daemons, caches and credentials helpers.
TOOL_ENV_ALLOWLIST = {
    "DOCKER_HOST",
    "DOCKER_CONFIG",
    "DOCKER_CERT_PATH",
    "DOCKER_TLS_VERIFY",
    "DOCKER_BUILDKIT",
    "GIT_SSH_COMMAND",
    "SSH_AUTH_SOCK",
    "TRIVY_CACHE_DIR",
    "XDG_CACHE_HOME",
    "HTTP_PROXY",
    "HTTPS_PROXY",
    "NO_PROXY",
}


def build_minimal_subprocess_env(
    *,
    sanitize_env: bool = True,
    allowlist: Optional[Iterable[str]] = None,
    extra: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Return an environment dict suitable for an external tool invocation.

    When sanitize_env is True, only a small allowlist is inherited from the parent
    environment so registry credentials and CI secrets are not passed to every tool.

    Args:
        sanitize_env: If False, inherits the full parent env.
        allowlist: Optional extra allowlist keys to include.
        extra: Explicit variables set for this call; they win over inherited ones.

    Returns:
        Dict[str, str] to pass as subprocess env.
    """

    base_allowlist = {
        "PATH",
        "HOME",
        "LANG",
        "LC_ALL",
        "LC_CTYPE",
        "TMPDIR",
        "TEMP",
        "TMP",
        "SSL_CERT_FILE",
        "SSL_CERT_DIR",
        "REQUESTS_CA_BUNDLE",
        "CURL_CA_BUNDLE",
    }
    base_allowlist |= TOOL_ENV_ALLOWLIST

    if allowlist is not None:
        for key in allowlist:
            if isinstance(key, str) and key:
                base_allowlist.add(key)

    env: Dict[str, str] = {}
    parent = os.environ

    for key in base_allowlist:
        value = parent.get(key)
        if value is not None:
            env[key] = value

    if not sanitize_env:
        inherited = dict(parent)
        inherited.update(env)
        env = inherited

    if extra:
        for key, value in extra.items():
            if isinstance(key, str) and key and value is not None:
                env[key] = str(value)

    return env
