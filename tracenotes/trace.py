"""
Trace record construction helpers.

Builds agent-trace records from hook event data.
"""

from __future__ import annotations

import hashlib
import os
import uuid
from datetime import datetime, timezone

from .environment import Environment
from .schema import SCHEMA_VERSION


# -------------------------------------------------------------------
# Utilities
# -------------------------------------------------------------------

def to_relative_path(absolute_path: str, root: str) -> str:
    if not os.path.isabs(absolute_path):
        return absolute_path
    try:
        rel = os.path.relpath(absolute_path, root)
    except ValueError:
        return absolute_path
    return absolute_path if rel.startswith("..") else rel


def normalize_model_id(model: str | None) -> str | None:
    """Add provider prefix to bare model names."""
    if not model:
        return None
    if "/" in model:
        return model
    prefixes = {
        "claude-": "anthropic",
        "gpt-": "openai",
        "o1": "openai",
        "o3": "openai",
        "gemini-": "google",
    }
    for prefix, provider in prefixes.items():
        if model.startswith(prefix):
            return f"{provider}/{model}"
    return model


def compute_content_hash(content: str) -> str:
    """Truncated SHA-256 of the normalised content.

    CRLF/CR become LF and trailing newlines are dropped, so an edit's
    ``new_string`` and the same lines read back from disk hash identically.
    """
    normalized = content.replace("\r\n", "\n").replace("\r", "\n").rstrip("\n")
    h = hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]
    return f"sha256:{h}"


def compute_range_positions(
    edits: list[dict],
    file_content: str | None = None,
) -> list[dict]:
    """Derive line-range positions from a list of edits."""
    positions: list[dict] = []
    for edit in edits:
        new_string = edit.get("new_string", "")
        if not new_string:
            continue

        rng = edit.get("range")
        line_count = new_string.count("\n") + 1
        if rng:
            start = max(1, int(rng.get("start_line_number", 1)))
            end = max(start, int(rng.get("end_line_number", start)))
            positions.append({"start_line": start, "end_line": end})
        elif file_content and file_content.find(new_string) != -1:
            idx = file_content.find(new_string)
            start = file_content[:idx].count("\n") + 1
            positions.append({"start_line": start, "end_line": start + line_count - 1})
        else:
            positions.append({"start_line": 1, "end_line": line_count})
    return positions


# -------------------------------------------------------------------
# Trace construction
# -------------------------------------------------------------------

def create_trace(
    env: Environment,
    contributor_type: str,
    file_path: str | None,
    *,
    model: str | None = None,
    range_positions: list[dict] | None = None,
    range_contents: list[str] | None = None,
    transcript: str | None = None,
    metadata: dict | None = None,
    revision: str | None = None,
) -> dict:
    """Build a trace record dict.

    ``file_path=None`` builds a session-level record with no files.
    """
    model_id = normalize_model_id(model)

    files: list[dict] = []
    if file_path:
        ranges: list[dict] = []
        for i, pos in enumerate(range_positions or []):
            r = {"start_line": pos["start_line"], "end_line": pos["end_line"]}
            if range_contents and i < len(range_contents) and range_contents[i]:
                r["content_hash"] = compute_content_hash(range_contents[i])
            ranges.append(r)
        if not ranges:
            ranges = [{"start_line": 1, "end_line": 1}]

        conversation: dict = {
            "contributor": {"type": contributor_type},
            "ranges": ranges,
        }
        if model_id:
            conversation["contributor"]["model_id"] = model_id
        if transcript:
            conversation["url"] = f"file://{transcript}"

        files.append({
            "path": to_relative_path(file_path, env.root),
            "conversations": [conversation],
        })

    trace: dict = {
        "version": SCHEMA_VERSION,
        "id": str(uuid.uuid4()),
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "tool": dict(env.tool),
        "files": files,
    }
    if revision:
        trace["vcs"] = {"type": "git", "revision": revision}

    if metadata:
        cleaned = {k: v for k, v in metadata.items() if v is not None}
        if model_id and not files:
            cleaned.setdefault("model_id", model_id)
        if cleaned:
            trace["metadata"] = cleaned

    return trace
