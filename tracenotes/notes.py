"""
Git notes store for trace records.

Records for a commit live in one note under a dedicated notes ref
(``refs/notes/agent-trace`` by default) so they never collide with other
notes in the repository.  The note body is a pretty-printed JSON array; a
single JSON object is also accepted on read.

Failure handling:

  - not found (no note, unknown revision): read returns ``[]``
  - broken ref (exists but git cannot read its tree): ``ensure_ready()``
    deletes and recreates it, then the failed write is retried exactly once
  - invalid record inside a note: logged and skipped
  - anything else: ``GitError`` / ``NotesWriteError`` propagates

The store does no locking.  Concurrent writers to the same revision are not
supported; git's atomic ref update is the only serialisation.
"""

from __future__ import annotations

import json
import logging
import re

from .config import DEFAULT_NOTES_REF
from .consolidate import combine
from .errors import GitError, NotesWriteError, RecordValidationError
from .git import Git, GitResult
from .schema import validate

logger = logging.getLogger(__name__)

_SHA_RE = re.compile(r"^[0-9a-f]{7,64}$", re.IGNORECASE)

# stderr fragments git prints when a revision (not a note) is missing
_MISSING_REVISION = (
    "failed to resolve",
    "not a valid object name",
    "unknown revision",
    "bad revision",
)

# stderr fragments git prints when the notes ref itself is unusable
_BROKEN_REF = (
    "failed to read notes tree",
    "failed to find/parse commit",
    "not a commit",
    "bad object",
)


# -------------------------------------------------------------------
# Note body parsing
# -------------------------------------------------------------------

def parse_note(text: str, revision: str = "") -> list[dict]:
    """Decode a note body into valid records, skipping the invalid ones."""
    text = text.strip()
    if not text:
        return []
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning("note on %s is not valid JSON, ignoring it: %s", revision or "?", exc)
        return []

    items = parsed if isinstance(parsed, list) else [parsed]
    records: list[dict] = []
    for index, item in enumerate(items):
        try:
            records.append(validate(item))
        except RecordValidationError as exc:
            logger.warning("skipping invalid trace #%d on %s: %s", index, revision or "?", exc)
    return records


def serialize_records(records: list[dict]) -> str:
    return json.dumps(records, indent=2) + "\n"


# -------------------------------------------------------------------
# Store
# -------------------------------------------------------------------

class NotesStore:
    """Read, write and repair the trace notes ref."""

    def __init__(self, git: Git, ref: str = DEFAULT_NOTES_REF):
        self.git = git
        self.ref = ref

    # ---------------------------------------------------------------
    # Reading
    # ---------------------------------------------------------------

    def read(self, revision: str) -> list[dict]:
        """Records attached to ``revision``; empty when there is no note."""
        result = self.git.run("notes", "--ref", self.ref, "show", revision)
        if result.ok:
            return parse_note(result.stdout, revision)
        if self._is_not_found(result):
            return []
        raise result.error()

    def has_traces(self, revision: str) -> bool:
        return bool(self.read(revision))

    def revisions(self) -> list[str]:
        """Every commit that carries a note under this ref."""
        if not self.ref_exists():
            return []
        result = self.git.run("notes", "--ref", self.ref, "list")
        if not result.ok:
            raise result.error()

        commits: list[str] = []
        for line in result.stdout.splitlines():
            # Format: <note-object> <annotated-object>
            parts = line.split()
            if not parts:
                continue
            sha = parts[-1]
            if _SHA_RE.match(sha):
                commits.append(sha)
        return commits

    def read_range(self, from_rev: str, to_rev: str = "HEAD") -> list[dict]:
        """Records on every commit in ``from_rev..to_rev``."""
        records: list[dict] = []
        for commit in self.git.rev_list(from_rev, to_rev):
            records.extend(self.read(commit))
        return records

    def revisions_with_metadata(self) -> list[dict]:
        result: list[dict] = []
        for commit in self.revisions():
            traces = self.read(commit)
            if traces:
                result.append({
                    "commit": commit,
                    "trace_count": len(traces),
                    "timestamp": traces[0].get("timestamp"),
                })
        return result

    # ---------------------------------------------------------------
    # Writing
    # ---------------------------------------------------------------

    def write(self, revision: str, records: list[dict]) -> list[dict]:
        """Merge ``records`` into the note on ``revision``.

        Returns the consolidated list now stored.  Records whose id is already
        present are ignored, so re-delivering a record is harmless.
        """
        if not records:
            return self.read(revision)

        try:
            return self._write_once(revision, records)
        except GitError as exc:
            if not self._looks_broken(exc):
                raise NotesWriteError(exc.git_args, exc.returncode, exc.stderr) from exc
            logger.warning("notes ref %s is broken (%s), repairing and retrying", self.ref, exc.stderr)

        self.ensure_ready()
        try:
            return self._write_once(revision, records)
        except GitError as exc:
            raise NotesWriteError(exc.git_args, exc.returncode, exc.stderr) from exc

    def _write_once(self, revision: str, records: list[dict]) -> list[dict]:
        existing = self.read(revision)
        merged = combine(existing, records)
        if existing and merged == existing:
            logger.debug("nothing new for %s", revision)
            return existing

        result = self.git.run(
            "notes", "--ref", self.ref, "add", "-f", "-F", "-", revision,
            input=serialize_records(merged),
        )
        if not result.ok:
            raise result.error()
        return merged

    # ---------------------------------------------------------------
    # Ref maintenance
    # ---------------------------------------------------------------

    def ref_exists(self) -> bool:
        return self.git.succeeds("show-ref", "--verify", "--quiet", self.ref)

    def ref_is_listable(self) -> bool:
        return self.git.succeeds("notes", "--ref", self.ref, "list")

    def _ref_object_type(self) -> str:
        result = self.git.run("cat-file", "-t", self.ref)
        return result.stdout.strip() if result.ok else ""

    def ensure_ready(self) -> None:
        """Make sure the notes ref exists and can be read.  Idempotent.

        A ref that exists but cannot be listed is deleted and rebuilt.  A
        missing ref is created with a throwaway note on HEAD, or, before the
        first commit, pointed at the empty tree.  That placeholder is upgraded
        to a real notes commit once HEAD exists.
        """
        if self.ref_exists():
            if not self.ref_is_listable():
                logger.warning("notes ref %s cannot be listed, recreating it", self.ref)
            elif self._ref_object_type() != "commit" and self.git.head():
                logger.debug("replacing placeholder notes ref %s", self.ref)
            else:
                return
            self.git.output("update-ref", "-d", self.ref)

        self._create_ref()

    def _create_ref(self) -> None:
        head = self.git.head()
        if head:
            self.git.output("notes", "--ref", self.ref, "add", "-f", "-m", "init", head)
            self.git.output("notes", "--ref", self.ref, "remove", head)
            return

        empty_tree = self.git.output("mktree", input="")
        self.git.output("update-ref", self.ref, empty_tree)

    # ---------------------------------------------------------------
    # Failure classification
    # ---------------------------------------------------------------

    @staticmethod
    def _is_not_found(result: GitResult) -> bool:
        if result.returncode == 1:
            return True
        if result.returncode == 128:
            message = result.stderr.lower()
            return any(fragment in message for fragment in _MISSING_REVISION)
        return False

    def _looks_broken(self, exc: GitError) -> bool:
        message = exc.stderr.lower()
        if any(fragment in message for fragment in _BROKEN_REF):
            return True
        if not self.ref_exists():
            return False
        return not self.ref_is_listable() or self._ref_object_type() != "commit"
