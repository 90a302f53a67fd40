"""
Trace record schema and validator.

A trace record is plain JSON (a dict once loaded)::

    {
        "version": "1.0.0",
        "id": "<uuid>",
        "timestamp": "2026-01-23T06:30:00Z",
        "vcs": {"type": "git", "revision": "<sha>"},            # optional
        "tool": {"name": "cursor", "version": "2.4.1"},         # optional
        "files": [
            {
                "path": "src/app.py",
                "conversations": [
                    {
                        "url": "file:///tmp/transcript.jsonl",   # optional
                        "contributor": {"type": "ai", "model_id": "anthropic/claude-sonnet-4"},
                        "ranges": [{"start_line": 1, "end_line": 50}],
                        "related": [{"type": "issue", "url": "https://..."}],
                    }
                ],
            }
        ],
        "metadata": {...},                                       # optional
    }

``validate()`` is the single gate for JSON arriving from hooks, notes and the
staging file.  It never mutates or copies the record.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Any

from jsonschema import Draft202012Validator, FormatChecker

from .errors import RecordValidationError

SCHEMA_VERSION = "1.0.0"
CONTRIBUTOR_TYPES = ("human", "ai", "mixed", "unknown")
VCS_TYPES = ("git", "jj", "hg", "svn")


# -------------------------------------------------------------------
# JSON Schema
# -------------------------------------------------------------------

_CONTRIBUTOR = {
    "type": "object",
    "required": ["type"],
    "properties": {
        "type": {"enum": list(CONTRIBUTOR_TYPES)},
        "model_id": {"type": "string", "maxLength": 250},
    },
}

_RANGE = {
    "type": "object",
    "required": ["start_line", "end_line"],
    "properties": {
        "start_line": {"type": "integer", "minimum": 1},
        "end_line": {"type": "integer", "minimum": 1},
        "content_hash": {"type": "string"},
        "contributor": _CONTRIBUTOR,
    },
}

_RELATED = {
    "type": "object",
    "required": ["type", "url"],
    "properties": {
        "type": {"type": "string"},
        "url": {"type": "string", "minLength": 1},
    },
}

_CONVERSATION = {
    "type": "object",
    "required": ["ranges"],
    "properties": {
        "url": {"type": "string", "minLength": 1},
        "contributor": _CONTRIBUTOR,
        "ranges": {"type": "array", "items": _RANGE},
        "related": {"type": "array", "items": _RELATED},
    },
}

_FILE = {
    "type": "object",
    "required": ["path", "conversations"],
    "properties": {
        "path": {"type": "string"},
        "conversations": {"type": "array", "items": _CONVERSATION},
    },
}

RECORD_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Agent trace record",
    "type": "object",
    "required": ["version", "id", "timestamp", "files"],
    "properties": {
        "version": {"type": "string", "pattern": r"^[0-9]+\.[0-9]+\.[0-9]+$"},
        "id": {"type": "string", "format": "uuid"},
        "timestamp": {"type": "string", "format": "date-time"},
        "vcs": {
            "type": "object",
            "required": ["type", "revision"],
            "properties": {
                "type": {"enum": list(VCS_TYPES)},
                "revision": {"type": "string"},
            },
        },
        "tool": {
            "type": "object",
            "required": ["name"],
            "properties": {
                "name": {"type": "string"},
                "version": {"type": "string"},
            },
        },
        "files": {"type": "array", "items": _FILE},
        "metadata": {"type": "object"},
    },
}


# -------------------------------------------------------------------
# Format checks
# -------------------------------------------------------------------

_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
_RFC3339_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)

_format_checker = FormatChecker(formats=())


@_format_checker.checks("uuid", raises=ValueError)
def _is_uuid(value: object) -> bool:
    if not isinstance(value, str):
        return True
    if not _UUID_RE.match(value):
        return False
    uuid.UUID(value)
    return True


@_format_checker.checks("date-time", raises=ValueError)
def _is_date_time(value: object) -> bool:
    if not isinstance(value, str):
        return True
    parse_timestamp(value)
    return True


_validator = Draft202012Validator(RECORD_SCHEMA, format_checker=_format_checker)


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware ``datetime``.

    Raises ``ValueError`` for anything that is not RFC 3339 (date, ``T``,
    time and a ``Z`` or ``+HH:MM`` offset).  Fractions are cut to
    microseconds so older ``fromisoformat`` implementations accept them.
    """
    match = _RFC3339_RE.match(value.strip())
    if not match:
        raise ValueError(f"not an RFC 3339 timestamp: {value!r}")
    date, time, fraction, offset = match.groups()
    if offset in ("Z", "z"):
        offset = "+00:00"
    text = f"{date}T{time}"
    if fraction:
        text += "." + fraction[:6].ljust(6, "0")
    return datetime.fromisoformat(text + offset)


# -------------------------------------------------------------------
# Validation
# -------------------------------------------------------------------

def _location(path) -> str:
    parts = []
    for part in path:
        if isinstance(part, int):
            parts.append(f"[{part}]")
        else:
            parts.append(f".{part}" if parts else str(part))
    return "".join(parts) or "<record>"


def _range_order_errors(candidate: dict) -> list[str]:
    errors: list[str] = []
    files = candidate.get("files")
    if not isinstance(files, list):
        return errors
    for fi, file_entry in enumerate(files):
        if not isinstance(file_entry, dict):
            continue
        for ci, conv in enumerate(file_entry.get("conversations") or []):
            if not isinstance(conv, dict):
                continue
            for ri, rng in enumerate(conv.get("ranges") or []):
                if not isinstance(rng, dict):
                    continue
                start, end = rng.get("start_line"), rng.get("end_line")
                if isinstance(start, int) and isinstance(end, int) and end < start:
                    errors.append(
                        f"files[{fi}].conversations[{ci}].ranges[{ri}]: "
                        f"end_line {end} is before start_line {start}"
                    )
    return errors


def iter_errors(candidate: Any) -> list[str]:
    """Every schema violation in ``candidate`` as a readable message."""
    errors = [
        f"{_location(err.absolute_path)}: {err.message}"
        for err in sorted(_validator.iter_errors(candidate), key=lambda e: list(map(str, e.absolute_path)))
    ]
    if isinstance(candidate, dict):
        errors.extend(_range_order_errors(candidate))
    return errors


def validate(candidate: Any) -> dict:
    """Return ``candidate`` if it is a valid record, else raise ``RecordValidationError``."""
    errors = iter_errors(candidate)
    if errors:
        raise RecordValidationError(errors)
    return candidate


def is_valid(candidate: Any) -> bool:
    return not iter_errors(candidate)
