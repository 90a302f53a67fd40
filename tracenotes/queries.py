"""
Read-side entry points for the report, analyze and dashboard commands.

Command handlers and the HTTP layer call ``TraceQueries`` only; they never
talk to git or the stores directly.  Every method here is free of side
effects apart from ``ensure_ready()`` repairing a broken notes ref.
"""

from __future__ import annotations

from .analyze import CommitAnalyzer
from .diff import effective_contributor
from .environment import Environment
from .git import Git
from .notes import NotesStore
from .report import summarize
from .staging import StagingBuffer


class TraceQueries:
    def __init__(self, env: Environment, git: Git | None = None):
        self.env = env
        self.git = git or Git(env.root, timeout=env.git_timeout)
        self.store = NotesStore(self.git, env.notes_ref)
        self.staging = StagingBuffer(env, self.store)
        self.analyzer = CommitAnalyzer(self.git, self.store)

    def ensure_ready(self) -> None:
        self.store.ensure_ready()

    # ---------------------------------------------------------------
    # Records
    # ---------------------------------------------------------------

    def read_all(self, revision: str | None = None) -> list[dict]:
        """Records on ``revision``, or on every annotated commit plus staging."""
        if revision:
            return self.store.read(revision)

        records: list[dict] = []
        for commit in self.store.revisions():
            records.extend(self.store.read(commit))
        records.extend(self.staging.read())
        return records

    def read_range(self, from_rev: str, to_rev: str = "HEAD") -> list[dict]:
        return self.store.read_range(from_rev, to_rev)

    def analyze_commit(self, revision: str) -> dict:
        return self.analyzer.analyze(revision)

    def summarize(self, records: list[dict]) -> dict:
        return summarize(records)

    # ---------------------------------------------------------------
    # Dashboard aggregates
    # ---------------------------------------------------------------

    def _commits(self, from_rev: str | None, to_rev: str) -> list[str]:
        if from_rev:
            return self.git.rev_list(from_rev, to_rev)
        return self.store.revisions()

    def dashboard_stats(self, from_rev: str | None = None, to_rev: str = "HEAD") -> dict:
        """Summary over a commit range (default: every annotated commit)."""
        records: list[dict] = []
        commits: list[dict] = []

        for commit in self._commits(from_rev, to_rev):
            traces = self.store.read(commit)
            if not traces:
                continue
            info = self.git.commit_summary(commit)
            info["trace_count"] = len(traces)
            commits.append(info)
            records.extend(traces)

        stats = summarize(records)
        stats["total_commits"] = len(commits)
        stats["commits"] = commits
        return stats

    def commit_list(self) -> list[dict]:
        return self.store.revisions_with_metadata()

    def file_attribution(
        self,
        path: str,
        from_rev: str | None = None,
        to_rev: str = "HEAD",
    ) -> list[dict]:
        """Recorded ranges for ``path``, grouped per commit."""
        attribution: list[dict] = []
        for commit in self._commits(from_rev, to_rev):
            ranges: list[dict] = []
            for record in self.store.read(commit):
                for file_entry in record.get("files") or []:
                    if file_entry.get("path") != path:
                        continue
                    for conv in file_entry.get("conversations") or []:
                        for rng in conv.get("ranges") or []:
                            ranges.append({
                                "start_line": rng["start_line"],
                                "end_line": rng["end_line"],
                                "contributor": effective_contributor(conv, rng),
                            })
            if ranges:
                attribution.append({"commit": commit, "ranges": ranges})
        return attribution
