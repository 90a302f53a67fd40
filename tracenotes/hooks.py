"""
Hook configuration for Cursor, Claude Code and git.

Merges ``tracenotes record`` into the agents' hook files so every edit event
is piped to the recorder, and installs a git post-commit hook that attaches
staged traces to the first commit.
"""

from __future__ import annotations

import json
import logging
import os
import stat
from pathlib import Path

logger = logging.getLogger(__name__)

CURSOR_HOOKS_FILE = ".cursor/hooks.json"
CLAUDE_SETTINGS_FILE = ".claude/settings.json"

RECORD_CMD = "tracenotes record"
ATTACH_STAGING_CMD = "tracenotes attach-staging"

CURSOR_EVENTS = (
    "sessionStart",
    "sessionEnd",
    "afterFileEdit",
    "afterTabFileEdit",
    "afterShellExecution",
)

GIT_HOOK_SCRIPT = f"""\
# tracenotes: attach traces captured before this commit
if [ -f .agent-trace/staging.jsonl ]; then
  {ATTACH_STAGING_CMD} 2>/dev/null || true
fi
"""


def _load_json(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("replacing unreadable %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def _mentions_record(entries: list) -> bool:
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        if RECORD_CMD in entry.get("command", ""):
            return True
        if any(RECORD_CMD in h.get("command", "") for h in entry.get("hooks", []) if isinstance(h, dict)):
            return True
    return False


# -------------------------------------------------------------------
# Cursor
# -------------------------------------------------------------------

def configure_cursor_hooks(project_dir: str | None = None) -> Path:
    """Merge the recorder into .cursor/hooks.json.  Returns the file path."""
    hooks_path = Path(project_dir or os.getcwd()) / CURSOR_HOOKS_FILE
    hooks_path.parent.mkdir(parents=True, exist_ok=True)

    config = _load_json(hooks_path)
    config.setdefault("version", 1)
    hooks = config.setdefault("hooks", {})

    for event in CURSOR_EVENTS:
        existing = hooks.get(event, [])
        if not _mentions_record(existing):
            existing.append({"command": RECORD_CMD})
            hooks[event] = existing

    hooks_path.write_text(json.dumps(config, indent=2) + "\n")
    return hooks_path


# -------------------------------------------------------------------
# Claude Code
# -------------------------------------------------------------------

def configure_claude_hooks(project_dir: str | None = None) -> Path:
    """Merge the recorder into .claude/settings.json.  Returns the file path."""
    settings_path = Path(project_dir or os.getcwd()) / CLAUDE_SETTINGS_FILE
    settings_path.parent.mkdir(parents=True, exist_ok=True)

    config = _load_json(settings_path)
    hooks = config.setdefault("hooks", {})
    hook_entry = {"type": "command", "command": RECORD_CMD}

    for event in ("SessionStart", "SessionEnd"):
        existing = hooks.get(event, [])
        if not _mentions_record(existing):
            existing.append({"hooks": [dict(hook_entry)]})
            hooks[event] = existing

    post = hooks.get("PostToolUse", [])
    if not _mentions_record(post):
        post.extend([
            {"matcher": "Write|Edit", "hooks": [dict(hook_entry)]},
            {"matcher": "Bash", "hooks": [dict(hook_entry)]},
        ])
        hooks["PostToolUse"] = post

    settings_path.write_text(json.dumps(config, indent=2) + "\n")
    return settings_path


# -------------------------------------------------------------------
# Git post-commit hook
# -------------------------------------------------------------------

def configure_git_hooks(project_dir: str | None = None) -> Path | None:
    """Install the attach-staging call into .git/hooks/post-commit.

    Appends to an existing hook, creates one with a shebang otherwise, and
    leaves it untouched when the call is already there.  Returns None when
    ``project_dir`` is not a git checkout.
    """
    git_dir = Path(project_dir or os.getcwd()) / ".git"
    if not git_dir.is_dir():
        return None

    hooks_dir = git_dir / "hooks"
    hooks_dir.mkdir(parents=True, exist_ok=True)
    hook_path = hooks_dir / "post-commit"

    if hook_path.exists():
        content = hook_path.read_text()
        if ATTACH_STAGING_CMD not in content:
            if not content.endswith("\n"):
                content += "\n"
            hook_path.write_text(content + "\n" + GIT_HOOK_SCRIPT)
    else:
        hook_path.write_text("#!/bin/sh\n" + GIT_HOOK_SCRIPT)

    current = hook_path.stat().st_mode
    hook_path.chmod(current | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return hook_path


def hooks_status(project_dir: str | None = None) -> dict[str, bool]:
    """Which integrations are configured for the project."""
    root = Path(project_dir or os.getcwd())

    def contains(path: Path, needle: str) -> bool:
        try:
            return path.is_file() and needle in path.read_text()
        except OSError:
            return False

    return {
        "cursor": contains(root / CURSOR_HOOKS_FILE, RECORD_CMD),
        "claude": contains(root / CLAUDE_SETTINGS_FILE, RECORD_CMD),
        "git": contains(root / ".git" / "hooks" / "post-commit", ATTACH_STAGING_CMD),
    }
