"""
Process environment captured once and passed to the stores.

Hooks run with the workspace and tool identity spread across environment
variables (``CURSOR_PROJECT_DIR``, ``CLAUDE_PROJECT_DIR``, ``CURSOR_VERSION``).
``Environment.detect()`` reads them a single time; everything downstream takes
the resulting value, so tests can hand in a fixture instead.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path

from .config import (
    PROJECT_CONFIG_DIR_NAME,
    STAGING_FILE_NAME,
    get_dashboard_port,
    get_git_timeout,
    get_notes_ref,
    get_project_config,
)


# -------------------------------------------------------------------
# Detection helpers
# -------------------------------------------------------------------

def detect_workspace_root(environ: Mapping[str, str] | None = None) -> str:
    """Detect the workspace / project root directory."""
    if environ is None:
        environ = os.environ
    for env_var in ("CURSOR_PROJECT_DIR", "CLAUDE_PROJECT_DIR"):
        val = environ.get(env_var)
        if val:
            return val
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True, text=True, timeout=5,
        )
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
    except (OSError, subprocess.SubprocessError):
        pass
    return os.getcwd()


def detect_tool(environ: Mapping[str, str] | None = None) -> dict:
    """Detect which AI coding tool invoked the hook."""
    if environ is None:
        environ = os.environ
    cursor_ver = environ.get("CURSOR_VERSION")
    if cursor_ver:
        return {"name": "cursor", "version": cursor_ver}
    if environ.get("CLAUDE_PROJECT_DIR"):
        return {"name": "claude-code"}
    return {"name": "unknown"}


# -------------------------------------------------------------------
# Environment value
# -------------------------------------------------------------------

@dataclass(frozen=True)
class Environment:
    root: str
    tool: dict = field(default_factory=lambda: {"name": "unknown"})
    environ: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def detect(cls, environ: Mapping[str, str] | None = None) -> "Environment":
        if environ is None:
            environ = dict(os.environ)
        return cls(
            root=detect_workspace_root(environ),
            tool=detect_tool(environ),
            environ=environ,
        )

    @cached_property
    def project_config(self) -> dict | None:
        return get_project_config(self.root)

    @property
    def data_dir(self) -> Path:
        return Path(self.root) / PROJECT_CONFIG_DIR_NAME

    @property
    def staging_path(self) -> Path:
        return self.data_dir / STAGING_FILE_NAME

    @property
    def notes_ref(self) -> str:
        return get_notes_ref(self.environ, self.project_config)

    @property
    def git_timeout(self) -> float:
        return get_git_timeout(self.environ, self.project_config)

    @property
    def dashboard_port(self) -> int:
        return get_dashboard_port(self.environ, self.project_config)
