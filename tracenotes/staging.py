"""
Staging buffer for traces captured before the first commit.

A note needs a commit to hang on.  Until one exists, records are appended to
``.agent-trace/staging.jsonl`` (one JSON record per line).  The git
post-commit hook runs ``tracenotes attach-staging``, which drains the buffer
into the notes store on the new commit and deletes the file.
"""

from __future__ import annotations

import json
import logging

from .environment import Environment
from .errors import RecordValidationError
from .notes import NotesStore
from .schema import validate

logger = logging.getLogger(__name__)


class StagingBuffer:
    def __init__(self, env: Environment, store: NotesStore):
        self.env = env
        self.store = store

    @property
    def path(self):
        return self.env.staging_path

    def append(self, record: dict) -> None:
        """Append one record as a JSON line."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")

    def pending(self) -> int:
        if not self.path.exists():
            return 0
        with open(self.path, encoding="utf-8") as f:
            return sum(1 for line in f if line.strip())

    def read(self) -> list[dict]:
        """Valid records in the buffer.  Malformed lines are logged and skipped."""
        if not self.path.exists():
            return []

        records: list[dict] = []
        with open(self.path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(validate(json.loads(line)))
                except json.JSONDecodeError as exc:
                    logger.warning("staging line %d is not valid JSON, skipping: %s", lineno, exc)
                except RecordValidationError as exc:
                    logger.warning("staging line %d is not a valid trace, skipping: %s", lineno, exc)
        return records

    def drain_into(self, revision: str) -> int:
        """Attach every staged record to ``revision`` and clear the buffer.

        Returns the number of records handed to the notes store.  The file is
        removed only after the notes write succeeded; a failing write leaves
        it in place for the next attempt.
        """
        records = self.read()
        if not records:
            if self.path.exists():
                logger.warning("no valid traces in %s, leaving it in place", self.path)
            return 0

        for record in records:
            vcs = record.setdefault("vcs", {"type": "git"})
            vcs["revision"] = revision

        self.store.write(revision, records)
        self.path.unlink()
        logger.info("attached %d staged trace(s) to %s", len(records), revision[:8])
        return len(records)
