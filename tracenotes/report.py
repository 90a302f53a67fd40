"""
Contribution summaries across a set of trace records.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from .diff import effective_contributor
from .schema import CONTRIBUTOR_TYPES, parse_timestamp


def summarize(records: Iterable[dict]) -> dict:
    """Fold records into counts.

    Ranges are counted per contributor type and per model id; tools are
    counted once per record.  The totals do not depend on record order.
    """
    records = list(records)
    files: set[str] = set()
    by_type = {t: 0 for t in CONTRIBUTOR_TYPES}
    by_model: dict[str, int] = {}
    by_tool: dict[str, int] = {}

    for record in records:
        for file_entry in record.get("files") or []:
            files.add(file_entry.get("path"))
            for conv in file_entry.get("conversations") or []:
                for rng in conv.get("ranges") or []:
                    contributor = effective_contributor(conv, rng)
                    ctype = contributor["type"] if contributor["type"] in by_type else "unknown"
                    by_type[ctype] += 1
                    if contributor["model_id"]:
                        by_model[contributor["model_id"]] = by_model.get(contributor["model_id"], 0) + 1

        tool_name = (record.get("tool") or {}).get("name")
        if tool_name:
            by_tool[tool_name] = by_tool.get(tool_name, 0) + 1

    return {
        "total_records": len(records),
        "distinct_files": len(files),
        "counts_by_contributor_type": by_type,
        "ranges_by_model": by_model,
        "traces_by_tool": by_tool,
    }


def filter_since(records: Iterable[dict], since: datetime) -> list[dict]:
    """Records stamped at or after ``since`` (naive ``since`` is read as UTC)."""
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    kept = []
    for record in records:
        try:
            if parse_timestamp(record["timestamp"]) >= since:
                kept.append(record)
        except (KeyError, ValueError):
            continue
    return kept


def _ranked(counts: dict[str, int]) -> list[tuple[str, int]]:
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))


def format_report(stats: dict, since: str | None = None) -> str:
    """Plain-text rendering of ``summarize()`` output."""
    by_type = stats["counts_by_contributor_type"]
    lines = ["Agent Trace Contribution Report", ""]
    if since:
        lines += [f"Period: since {since}", ""]

    lines += [
        "Summary:",
        f"  Total traces:        {stats['total_records']}",
        f"  Files modified:      {stats['distinct_files']}",
        f"  AI contributions:    {by_type.get('ai', 0)}",
        f"  Human contributions: {by_type.get('human', 0)}",
    ]
    if by_type.get("mixed"):
        lines.append(f"  Mixed contributions: {by_type['mixed']}")
    if by_type.get("unknown"):
        lines.append(f"  Unknown:             {by_type['unknown']}")

    if stats["ranges_by_model"]:
        lines += ["", "Models used:"]
        lines += [f"  {model}: {count} ranges" for model, count in _ranked(stats["ranges_by_model"])]

    if stats["traces_by_tool"]:
        lines += ["", "Tools used:"]
        lines += [f"  {tool}: {count} traces" for tool, count in _ranked(stats["traces_by_tool"])]

    return "\n".join(lines)
