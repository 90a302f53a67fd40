"""
Commit analysis: which recorded ranges did a commit actually touch?

``CommitAnalyzer.analyze()`` resolves the target, collects the commit's
changed files (``--numstat``) and changed lines (``--unified=0``), reads the
commit's trace records from the notes store and hands both to
``diff.attribute_changes``.  Root commits are diffed with
``git diff-tree --root``; everything else against the first parent.
"""

from __future__ import annotations

import logging

from .diff import FileChange, attribute_changes, parse_numstat, parse_unified_diff
from .git import Git
from .notes import NotesStore

logger = logging.getLogger(__name__)

_DIFF_FLAGS = ("--no-color", "--no-ext-diff", "--find-renames")

# Non-ASCII paths come out verbatim instead of C-quoted.
_RAW_PATHS = ("-c", "core.quotePath=false")


def commit_changes(git: Git, commit: str) -> dict[str, FileChange]:
    """Changed files of ``commit`` with their new-side changed line numbers."""
    parents = git.parents(commit)
    if parents:
        command, rest = "diff", [*_DIFF_FLAGS, parents[0], commit]
    else:
        command, rest = "diff-tree", [*_DIFF_FLAGS, "--root", "-r", "--no-commit-id", commit]

    files = parse_numstat(git.raw(*_RAW_PATHS, command, "--numstat", *rest))
    patch = git.raw(*_RAW_PATHS, command, "-p", "--unified=0", *rest)
    return parse_unified_diff(patch, files)


class CommitAnalyzer:
    def __init__(self, git: Git, store: NotesStore):
        self.git = git
        self.store = store

    def analyze(self, target: str) -> dict:
        """Per-file attribution for the lines ``target`` changed.

        Returns::

            {
                "commit": "<sha>", "message": ..., "author": ..., "date": ...,
                "files": {"src/a.py": {"ranges": [...], "models": [...]}},
            }
        """
        commit = self.git.resolve_commit(target)
        records = self.store.read(commit)
        summary = self.git.commit_summary(commit)

        if records:
            changes = commit_changes(self.git, commit)
            files = attribute_changes(changes, records)
        else:
            files = {}
        logger.debug("%s: %d trace(s), %d attributed file(s)", commit[:8], len(records), len(files))

        return {
            "commit": commit,
            "message": summary["message"],
            "author": summary["author"],
            "date": summary["date"],
            "files": files,
        }
