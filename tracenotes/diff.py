"""
Diff parsing and range matching.

Stored ranges are positions recorded while the agent was editing the working
tree.  By the time the commit lands those positions may have drifted, so the
analyzer keeps only ranges that overlap a line the commit actually touched.

``parse_numstat`` lists the files a commit changed, ``parse_unified_diff``
fills in the exact new-file line numbers from a ``--unified=0`` diff, and
``attribute_changes`` intersects them with the ranges in the trace records.
Everything here is pure text processing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

_HUNK_RE = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,(\d+))? @@")
_BRACE_RENAME_RE = re.compile(r"^(.*)\{(.*) => (.*)\}(.*)$")
_OCTAL_RE = re.compile(r"[0-7]{3}")
_C_ESCAPES = {"a": 7, "b": 8, "t": 9, "n": 10, "v": 11, "f": 12, "r": 13, '"': 34, "\\": 92}


@dataclass
class LineChange:
    line: int
    type: str  # "added" | "removed"


@dataclass
class FileChange:
    path: str
    additions: int = 0
    deletions: int = 0
    binary: bool = False
    changes: list[LineChange] = field(default_factory=list)

    @property
    def has_textual_delta(self) -> bool:
        return not self.binary and (self.additions > 0 or self.deletions > 0)

    def changed_lines(self) -> set[int]:
        return {c.line for c in self.changes}


# -------------------------------------------------------------------
# Parsing
# -------------------------------------------------------------------

def unquote_path(raw: str) -> str:
    """Undo git's C-style path quoting (``"src/\\303\\251.py"`` -> ``src/é.py``)."""
    if len(raw) < 2 or raw[0] != '"' or raw[-1] != '"':
        return raw
    body = raw[1:-1]
    out = bytearray()
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            octal = body[i + 1:i + 4]
            if _OCTAL_RE.fullmatch(octal):
                out.append(int(octal, 8))
                i += 4
                continue
            if body[i + 1] in _C_ESCAPES:
                out.append(_C_ESCAPES[body[i + 1]])
                i += 2
                continue
        out += ch.encode("utf-8")
        i += 1
    return out.decode("utf-8", errors="replace")


def _numstat_path(raw: str) -> str:
    """New-side path from a numstat path column (handles rename syntax)."""
    match = _BRACE_RENAME_RE.match(raw)
    if match:
        prefix, _old, new, suffix = match.groups()
        return unquote_path((prefix + new + suffix).replace("//", "/"))
    if " => " in raw:
        return unquote_path(raw.split(" => ", 1)[1])
    return unquote_path(raw)


def parse_numstat(text: str) -> dict[str, FileChange]:
    """Parse ``git diff --numstat`` output into ``{path: FileChange}``."""
    files: dict[str, FileChange] = {}
    for line in text.splitlines():
        parts = line.split("\t")
        if len(parts) < 3:
            continue
        added, deleted = parts[0], parts[1]
        path = _numstat_path("\t".join(parts[2:]).strip())
        if not path or path == "/dev/null":
            continue
        binary = added == "-" and deleted == "-"
        files[path] = FileChange(
            path=path,
            additions=int(added) if added.isdigit() else 0,
            deletions=int(deleted) if deleted.isdigit() else 0,
            binary=binary,
        )
    return files


def _header_path(line: str) -> str | None:
    raw = unquote_path(line[4:].strip())
    if raw == "/dev/null":
        return None
    if raw.startswith(("a/", "b/")):
        raw = raw[2:]
    return raw or None


def parse_unified_diff(text: str, files: dict[str, FileChange]) -> dict[str, FileChange]:
    """Record per-line changes from a zero-context unified diff into ``files``.

    The cursor follows the new-side start of each hunk.  Added lines are
    recorded at the cursor and advance it; removed lines are recorded at the
    cursor without advancing (they have no position in the new file); any
    other content line advances it.  Files missing from ``files`` get an
    entry created on first use.
    """
    current: str | None = None
    cursor = 0
    in_header = True
    lines = text.splitlines()

    for index, line in enumerate(lines):
        if line.startswith("diff "):
            in_header = True
        elif _is_file_header(line, lines, index, in_header):
            path = _header_path(line)
            if path:
                current = path
                cursor = 0
        elif line.startswith("@@"):
            match = _HUNK_RE.match(line)
            if match:
                cursor = int(match.group(1))
                in_header = False
        elif line.startswith("\\"):
            # "\ No newline at end of file"
            continue
        elif line.startswith("+"):
            if current is not None:
                _entry(files, current).changes.append(LineChange(cursor, "added"))
            cursor += 1
        elif line.startswith("-"):
            if current is not None:
                _entry(files, current).changes.append(LineChange(cursor, "removed"))
        elif line.strip():
            cursor += 1

    return files


def _is_file_header(line: str, lines: list[str], index: int, in_header: bool) -> bool:
    # Inside a hunk "--- x" is a removed line starting with "-- ", unless a
    # "+++ " line follows (plain diffs without a "diff --git" separator).
    if line.startswith("+++ "):
        return in_header or (index > 0 and lines[index - 1].startswith("--- "))
    if line.startswith("--- "):
        return in_header or (index + 1 < len(lines) and lines[index + 1].startswith("+++ "))
    return False


def _entry(files: dict[str, FileChange], path: str) -> FileChange:
    change = files.get(path)
    if change is None:
        change = FileChange(path=path)
        files[path] = change
    return change


# -------------------------------------------------------------------
# Matching
# -------------------------------------------------------------------

def effective_contributor(conversation: dict, rng: dict) -> dict:
    """Contributor for one range: a range-level override wins."""
    contributor = rng.get("contributor") or conversation.get("contributor") or {}
    return {
        "type": contributor.get("type") or "unknown",
        "model_id": contributor.get("model_id"),
    }


def attribute_file(change: FileChange, records: list[dict]) -> dict | None:
    """Attributed ranges for one changed file, or None if nothing is recorded.

    With no changed lines at all (pure rename, mode change, binary) every
    recorded range is kept as-is.
    """
    changed = change.changed_lines()
    passthrough = not changed
    if passthrough and change.has_textual_delta:
        logger.warning(
            "%s reports %d+/%d- lines but no hunks were parsed, keeping all ranges",
            change.path, change.additions, change.deletions,
        )

    ranges: list[dict] = []
    models: list[str] = []
    seen_file = False

    for record in records:
        for file_entry in record.get("files") or []:
            if file_entry.get("path") != change.path:
                continue
            seen_file = True
            for conv in file_entry.get("conversations") or []:
                for rng in conv.get("ranges") or []:
                    start, end = rng["start_line"], rng["end_line"]
                    if not passthrough and not any(start <= n <= end for n in changed):
                        continue
                    contributor = effective_contributor(conv, rng)
                    ranges.append({
                        "start_line": start,
                        "end_line": end,
                        "contributor": contributor,
                    })
                    model_id = contributor["model_id"]
                    if model_id and model_id not in models:
                        models.append(model_id)

    if not seen_file or not ranges:
        return None
    return {"ranges": ranges, "models": models}


def attribute_changes(changes: dict[str, FileChange], records: list[dict]) -> dict[str, dict]:
    """``{path: {"ranges": [...], "models": [...]}}`` for every attributed changed file."""
    result: dict[str, dict] = {}
    for path, change in changes.items():
        attributed = attribute_file(change, records)
        if attributed is not None:
            result[path] = attributed
    return result
