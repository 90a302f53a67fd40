"""
Thin git subprocess adapter.

All git access goes through ``Git``.  Each call blocks until git exits (or the
timeout expires) and returns a ``GitResult``; ``Git.output()`` raises
``GitError`` on any non-zero exit so callers decide which failures are
expected.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass

from .config import DEFAULT_GIT_TIMEOUT
from .errors import GitError

logger = logging.getLogger(__name__)


@dataclass
class GitResult:
    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def error(self) -> GitError:
        return GitError(self.args, self.returncode, self.stderr or self.stdout)


class Git:
    """Run git commands inside one working tree."""

    def __init__(self, cwd: str, timeout: float = DEFAULT_GIT_TIMEOUT):
        self.cwd = cwd
        self.timeout = timeout

    def run(self, *args: str, input: str | None = None) -> GitResult:
        """Run ``git <args>`` and return the result whatever the exit status."""
        logger.debug("git %s", " ".join(args))
        try:
            proc = subprocess.run(
                ["git", *args],
                input=input,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                cwd=self.cwd,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise GitError(args, None, f"no response after {exc.timeout}s") from exc
        except OSError as exc:
            raise GitError(args, None, str(exc)) from exc
        return GitResult(list(args), proc.returncode, proc.stdout, proc.stderr)

    def output(self, *args: str, input: str | None = None) -> str:
        """Run a git command and return stripped stdout, raising on failure."""
        result = self.run(*args, input=input)
        if not result.ok:
            raise result.error()
        return result.stdout.strip()

    def raw(self, *args: str) -> str:
        """Like ``output()`` but keeps stdout untouched (diffs)."""
        result = self.run(*args)
        if not result.ok:
            raise result.error()
        return result.stdout

    def succeeds(self, *args: str) -> bool:
        return self.run(*args).ok

    # ---------------------------------------------------------------
    # Revision helpers
    # ---------------------------------------------------------------

    def head(self) -> str | None:
        """Current HEAD commit, or None before the first commit."""
        result = self.run("rev-parse", "--verify", "--quiet", "HEAD^{commit}")
        if result.ok and result.stdout.strip():
            return result.stdout.strip()
        return None

    def resolve_commit(self, target: str) -> str:
        """Resolve a branch, tag, short SHA or ``HEAD`` to a full commit SHA."""
        result = self.run("rev-parse", "--verify", "--quiet", f"{target}^{{commit}}")
        if not result.ok or not result.stdout.strip():
            raise GitError(
                ["rev-parse", "--verify", target],
                result.returncode,
                f"could not resolve commit: {target}",
            )
        return result.stdout.strip()

    def parents(self, commit: str) -> list[str]:
        line = self.output("rev-list", "--parents", "-n", "1", commit)
        return line.split()[1:]

    def rev_list(self, from_rev: str, to_rev: str = "HEAD") -> list[str]:
        out = self.output("rev-list", f"{from_rev}..{to_rev}")
        return [line.strip() for line in out.splitlines() if line.strip()]

    def commit_summary(self, commit: str) -> dict:
        """sha / message / author / date for one commit."""
        out = self.output("log", "-1", "--format=%H%x1f%s%x1f%an%x1f%aI", commit)
        sha, message, author, date = (out.split("\x1f") + ["", "", "", ""])[:4]
        return {
            "sha": sha or commit,
            "message": message,
            "author": author,
            "date": date,
        }
