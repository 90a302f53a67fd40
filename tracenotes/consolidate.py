"""
Record consolidation: the pure half of the notes store.

Capture hooks fire once per edit, so one AI session produces a stream of
small records for the same commit.  Before a note is written, records that
share a conversation key are folded into one:

  - key: first conversation URL, else ``metadata.conversation_id`` (or
    ``session_id``), else ``"no-conversation"``
  - identity: the first-seen record's ``id``; absorbed ids are listed in
    ``metadata.merged_ids``
  - timestamp: the earliest of the group
  - per file, conversations with the same ``(contributor.type,
    contributor.model_id)`` have their ranges unioned, deduplicated on the
    exact ``start_line-end_line`` pair; other conversations are appended

Nothing here touches git or the filesystem.  Inputs are never mutated.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable

from .schema import parse_timestamp

NO_CONVERSATION = "no-conversation"
MERGED_IDS_KEY = "merged_ids"
CONVERSATION_ID_KEYS = ("conversation_id", "session_id")


def conversation_key(record: dict) -> str:
    """The grouping key a record is consolidated under."""
    files = record.get("files") or []
    if files:
        conversations = files[0].get("conversations") or []
        if conversations and conversations[0].get("url"):
            return conversations[0]["url"]
    metadata = record.get("metadata") or {}
    for key in CONVERSATION_ID_KEYS:
        if metadata.get(key):
            return str(metadata[key])
    return NO_CONVERSATION


def known_ids(records: Iterable[dict]) -> set[str]:
    """Every id already represented by ``records``, absorbed ones included."""
    ids: set[str] = set()
    for record in records:
        if record.get("id"):
            ids.add(record["id"])
        ids.update((record.get("metadata") or {}).get(MERGED_IDS_KEY) or [])
    return ids


def _range_key(rng: dict) -> str:
    return f"{rng.get('start_line')}-{rng.get('end_line')}"


def _contributor_key(conversation: dict) -> tuple:
    contributor = conversation.get("contributor") or {}
    return (contributor.get("type"), contributor.get("model_id"))


def merge_conversation(target: dict, incoming: dict) -> None:
    """Union ``incoming``'s ranges into ``target`` (in place, deduplicated)."""
    ranges = target.setdefault("ranges", [])
    seen = {_range_key(r) for r in ranges}
    for rng in incoming.get("ranges") or []:
        key = _range_key(rng)
        if key not in seen:
            ranges.append(copy.deepcopy(rng))
            seen.add(key)


def _earliest(timestamps: list[str]) -> str:
    best, best_at = timestamps[0], None
    for ts in timestamps:
        try:
            at = parse_timestamp(ts)
        except (TypeError, ValueError, AttributeError):
            continue
        if best_at is None or at < best_at:
            best, best_at = ts, at
    return best


def merge_records(group: list[dict]) -> dict:
    """Fold a group of records sharing a conversation key into one."""
    if len(group) == 1:
        return copy.deepcopy(group[0])

    base = copy.deepcopy(group[0])
    file_map: dict[str, dict] = {}

    for record in group:
        for file_entry in record.get("files") or []:
            path = file_entry.get("path")
            merged_file = file_map.get(path)
            if merged_file is None:
                merged_file = {"path": path, "conversations": []}
                file_map[path] = merged_file
            for conv in file_entry.get("conversations") or []:
                existing = next(
                    (c for c in merged_file["conversations"]
                     if _contributor_key(c) == _contributor_key(conv)),
                    None,
                )
                if existing is None:
                    fresh = copy.deepcopy(conv)
                    fresh["ranges"] = []
                    merge_conversation(fresh, conv)
                    merged_file["conversations"].append(fresh)
                else:
                    merge_conversation(existing, conv)

    base["timestamp"] = _earliest([r.get("timestamp") for r in group])
    base["files"] = list(file_map.values())

    absorbed: list[str] = []
    for record in group:
        for rid in [record.get("id"), *((record.get("metadata") or {}).get(MERGED_IDS_KEY) or [])]:
            if rid and rid != base.get("id") and rid not in absorbed:
                absorbed.append(rid)
    if absorbed:
        metadata = base.setdefault("metadata", {})
        metadata[MERGED_IDS_KEY] = absorbed

    return base


def consolidate(records: list[dict]) -> list[dict]:
    """Group ``records`` by conversation key and merge each group.

    Groups keep the order in which their first record appeared.
    """
    groups: dict[str, list[dict]] = {}
    for record in records:
        groups.setdefault(conversation_key(record), []).append(record)
    return [merge_records(group) for group in groups.values()]


def combine(existing: list[dict], incoming: list[dict]) -> list[dict]:
    """Existing records plus new ones not seen before, consolidated."""
    seen = known_ids(existing)
    fresh: list[dict] = []
    for record in incoming:
        rid = record.get("id")
        if rid in seen:
            continue
        seen.add(rid)
        fresh.append(record)
    return consolidate([*existing, *fresh])
