"""
Configuration management for tracenotes.

Project config: .agent-trace/config.json   (notes ref, git timeout, dashboard port)

Each setting resolves in the same order:
  1. Environment variable (TRACENOTES_*)
  2. Project config
  3. Built-in default
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# Paths and defaults
# -------------------------------------------------------------------

PROJECT_CONFIG_DIR_NAME = ".agent-trace"
PROJECT_CONFIG_FILE_NAME = "config.json"
STAGING_FILE_NAME = "staging.jsonl"

DEFAULT_NOTES_REF = "refs/notes/agent-trace"
DEFAULT_GIT_TIMEOUT = 30.0
DEFAULT_DASHBOARD_PORT = 3000

ENV_NOTES_REF = "TRACENOTES_NOTES_REF"
ENV_GIT_TIMEOUT = "TRACENOTES_GIT_TIMEOUT"
ENV_DASHBOARD_PORT = "TRACENOTES_PORT"


# -------------------------------------------------------------------
# Project config
# -------------------------------------------------------------------

def _project_config_path(project_dir: str | None = None) -> Path:
    if project_dir is None:
        project_dir = os.getcwd()
    return Path(project_dir) / PROJECT_CONFIG_DIR_NAME / PROJECT_CONFIG_FILE_NAME


def get_project_config(project_dir: str | None = None) -> dict | None:
    """Load .agent-trace/config.json.  Returns None when not initialised."""
    path = _project_config_path(project_dir)
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("ignoring unreadable config %s: %s", path, exc)
        return None


def save_project_config(config: dict, project_dir: str | None = None) -> Path:
    """Write .agent-trace/config.json and update .gitignore."""
    if project_dir is None:
        project_dir = os.getcwd()

    config_dir = Path(project_dir) / PROJECT_CONFIG_DIR_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / PROJECT_CONFIG_FILE_NAME
    path.write_text(json.dumps(config, indent=2) + "\n")

    _ensure_gitignore(project_dir)
    return path


def _ensure_gitignore(project_dir: str) -> None:
    """Add .agent-trace/ to .gitignore if not already present."""
    gitignore = Path(project_dir) / ".gitignore"
    marker = f"{PROJECT_CONFIG_DIR_NAME}/"

    if gitignore.exists():
        content = gitignore.read_text()
        if marker not in content.splitlines():
            with open(gitignore, "a") as f:
                if content and not content.endswith("\n"):
                    f.write("\n")
                f.write(f"{marker}\n")
    else:
        gitignore.write_text(f"{marker}\n")


# -------------------------------------------------------------------
# Setting resolution
# -------------------------------------------------------------------

def _lookup(
    key: str,
    env_var: str,
    environ: Mapping[str, str],
    project_config: dict | None,
):
    value = environ.get(env_var)
    if value:
        return value
    if project_config and project_config.get(key) not in (None, ""):
        return project_config[key]
    return None


def get_notes_ref(
    environ: Mapping[str, str],
    project_config: dict | None = None,
) -> str:
    """Notes namespace holding the trace records."""
    ref = _lookup("notes_ref", ENV_NOTES_REF, environ, project_config)
    if not ref:
        return DEFAULT_NOTES_REF
    ref = str(ref).strip()
    if not ref.startswith("refs/"):
        ref = f"refs/notes/{ref}"
    return ref


def get_git_timeout(
    environ: Mapping[str, str],
    project_config: dict | None = None,
) -> float:
    """Seconds to wait for any single git invocation."""
    raw = _lookup("git_timeout", ENV_GIT_TIMEOUT, environ, project_config)
    if raw is None:
        return DEFAULT_GIT_TIMEOUT
    try:
        timeout = float(raw)
    except (TypeError, ValueError):
        logger.warning("invalid git timeout %r, using %s", raw, DEFAULT_GIT_TIMEOUT)
        return DEFAULT_GIT_TIMEOUT
    return timeout if timeout > 0 else DEFAULT_GIT_TIMEOUT


def get_dashboard_port(
    environ: Mapping[str, str],
    project_config: dict | None = None,
) -> int:
    raw = _lookup("dashboard_port", ENV_DASHBOARD_PORT, environ, project_config)
    if raw is None:
        return DEFAULT_DASHBOARD_PORT
    try:
        return int(raw)
    except (TypeError, ValueError):
        logger.warning("invalid dashboard port %r, using %s", raw, DEFAULT_DASHBOARD_PORT)
        return DEFAULT_DASHBOARD_PORT
