"""
Trace recording: hook events in, trace records out.

Cursor and Claude Code send differently shaped JSON to the same
``tracenotes record`` command.  Every supported event kind has one handler
that normalises its payload into a canonical record; ``capture()`` then
stores it, in the notes store when HEAD exists, else in the staging buffer.
"""

from __future__ import annotations

import json
import logging
import sys

from .environment import Environment
from .errors import TraceNotesError
from .git import Git
from .notes import NotesStore
from .staging import StagingBuffer
from .trace import compute_range_positions, create_trace

logger = logging.getLogger(__name__)

_MODEL_KEYS = ("model", "model_id", "model_name", "modelId")


# -------------------------------------------------------------------
# Payload helpers
# -------------------------------------------------------------------

def _try_read_file(path: str | None) -> str | None:
    if not path:
        return None
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except (OSError, UnicodeDecodeError):
        return None


def _model_of(d: dict) -> str | None:
    for key in _MODEL_KEYS:
        value = d.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def event_kind(d: dict) -> str | None:
    """The hook event name, inferred as ``PostToolUse`` for bare tool payloads."""
    name = d.get("hook_event_name")
    if name:
        return name
    if d.get("tool_name"):
        return "PostToolUse"
    return None


# -------------------------------------------------------------------
# Cursor event handlers
# -------------------------------------------------------------------

def _cursor_afterFileEdit(d, env, revision):
    fp = d.get("file_path")
    if not fp:
        return None
    edits = d.get("edits") or []
    return create_trace(
        env, "ai", fp,
        model=_model_of(d),
        range_positions=compute_range_positions(edits, _try_read_file(fp)),
        range_contents=[e["new_string"] for e in edits if e.get("new_string")],
        transcript=d.get("transcript_path"),
        metadata={"conversation_id": d.get("conversation_id"), "generation_id": d.get("generation_id")},
        revision=revision,
    )


def _cursor_afterTabFileEdit(d, env, revision):
    fp = d.get("file_path")
    if not fp:
        return None
    edits = d.get("edits") or []
    return create_trace(
        env, "ai", fp,
        model=_model_of(d),
        range_positions=compute_range_positions(edits),
        range_contents=[e["new_string"] for e in edits if e.get("new_string")],
        metadata={"conversation_id": d.get("conversation_id"), "generation_id": d.get("generation_id")},
        revision=revision,
    )


def _cursor_afterShellExecution(d, env, revision):
    return create_trace(
        env, "ai", None,
        model=_model_of(d),
        metadata={
            "event": "shell",
            "conversation_id": d.get("conversation_id"),
            "generation_id": d.get("generation_id"),
            "command": d.get("command"),
            "duration_ms": d.get("duration"),
        },
        revision=revision,
    )


def _cursor_sessionStart(d, env, revision):
    return create_trace(
        env, "ai", None,
        model=_model_of(d),
        metadata={
            "event": "session_start",
            "session_id": d.get("session_id"),
            "conversation_id": d.get("conversation_id"),
            "is_background_agent": d.get("is_background_agent"),
            "composer_mode": d.get("composer_mode"),
        },
        revision=revision,
    )


def _cursor_sessionEnd(d, env, revision):
    return create_trace(
        env, "ai", None,
        model=_model_of(d),
        metadata={
            "event": "session_end",
            "session_id": d.get("session_id"),
            "conversation_id": d.get("conversation_id"),
            "reason": d.get("reason"),
            "duration_ms": d.get("duration_ms"),
        },
        revision=revision,
    )


_CURSOR = {
    "afterFileEdit": _cursor_afterFileEdit,
    "afterTabFileEdit": _cursor_afterTabFileEdit,
    "afterShellExecution": _cursor_afterShellExecution,
    "sessionStart": _cursor_sessionStart,
    "sessionEnd": _cursor_sessionEnd,
}


# -------------------------------------------------------------------
# Claude Code event handlers
# -------------------------------------------------------------------

def _claude_PostToolUse(d, env, revision):
    tn = d.get("tool_name", "")
    is_file = tn in ("Write", "Edit")
    is_shell = tn in ("Bash", "Shell")
    if not is_file and not is_shell:
        return None

    ti = d.get("tool_input") or {}
    metadata = {
        "session_id": d.get("session_id"),
        "tool_name": tn,
        "tool_use_id": d.get("tool_use_id"),
    }

    if is_shell:
        metadata["event"] = "shell"
        metadata["command"] = ti.get("command")
        return create_trace(env, "ai", None, model=_model_of(d), metadata=metadata, revision=revision)

    fp = ti.get("file_path")
    if not fp:
        return None
    # Write sends "content", Edit sends "new_string"
    new_string = ti.get("new_string") or ti.get("content")
    rp, rc = None, None
    if new_string:
        edits = [{"old_string": ti.get("old_string", ""), "new_string": new_string}]
        rp = compute_range_positions(edits, _try_read_file(fp))
        rc = [new_string]

    return create_trace(
        env, "ai", fp,
        model=_model_of(d),
        range_positions=rp,
        range_contents=rc,
        transcript=d.get("transcript_path"),
        metadata=metadata,
        revision=revision,
    )


def _claude_SessionStart(d, env, revision):
    return create_trace(
        env, "ai", None,
        model=_model_of(d),
        metadata={
            "event": "session_start",
            "session_id": d.get("session_id"),
            "source": d.get("source"),
        },
        revision=revision,
    )


def _claude_SessionEnd(d, env, revision):
    return create_trace(
        env, "ai", None,
        model=_model_of(d),
        metadata={
            "event": "session_end",
            "session_id": d.get("session_id"),
            "reason": d.get("reason"),
        },
        revision=revision,
    )


_CLAUDE = {
    "PostToolUse": _claude_PostToolUse,
    "SessionStart": _claude_SessionStart,
    "SessionEnd": _claude_SessionEnd,
}


# -------------------------------------------------------------------
# Normalisation and capture
# -------------------------------------------------------------------

def normalize_event(data: dict, env: Environment, revision: str | None = None) -> dict | None:
    """Canonical trace record for a hook payload, or None for ignored events."""
    kind = event_kind(data)
    handler = _CURSOR.get(kind) or _CLAUDE.get(kind)
    if handler is None:
        logger.debug("ignoring hook event %r", kind)
        return None
    return handler(data, env, revision)


def capture(record: dict, env: Environment, git: Git | None = None) -> str:
    """Store ``record``.  Returns ``"notes"`` or ``"staging"``.

    With no commit yet, or when the notes write fails hard, the record goes to
    the staging buffer instead so it is not lost.
    """
    if git is None:
        git = Git(env.root, timeout=env.git_timeout)
    store = NotesStore(git, env.notes_ref)
    staging = StagingBuffer(env, store)

    head = git.head()
    if head:
        try:
            store.ensure_ready()
            store.write(head, [record])
            return "notes"
        except TraceNotesError as exc:
            logger.warning("could not write note on %s, staging trace instead: %s", head[:8], exc)

    staging.append(record)
    return "staging"


def record_from_stdin(env: Environment | None = None, stdin=None) -> str | None:
    """Read a hook event from stdin, build a trace, and store it."""
    stdin = stdin or sys.stdin
    raw = stdin.read().strip()
    if not raw:
        return None

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("hook payload is not JSON: %s", exc)
        return None
    if not isinstance(data, dict):
        return None

    if env is None:
        env = Environment.detect()
    git = Git(env.root, timeout=env.git_timeout)

    record = normalize_event(data, env, revision=git.head())
    if record is None:
        return None
    return capture(record, env, git)
