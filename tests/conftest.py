import subprocess
import uuid

import pytest

from tracenotes.environment import Environment
from tracenotes.git import Git
from tracenotes.notes import NotesStore


def run_git(cwd, *args, input=None):
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        input=input,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


class Repo:
    """A throwaway git repository under tmp_path."""

    def __init__(self, path):
        self.path = path

    def git(self, *args, input=None):
        return run_git(self.path, *args, input=input)

    def write(self, rel, content):
        target = self.path / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
        return target

    def commit(self, files=None, message="commit"):
        """Write ``files`` ({path: content}), stage only those and commit."""
        for rel, content in (files or {}).items():
            self.write(rel, content)
            self.git("add", "--", rel)
        self.git("commit", "-q", "--allow-empty", "-m", message)
        return self.git("rev-parse", "HEAD")

    def rename(self, old, new, message="rename"):
        self.git("mv", old, new)
        self.git("commit", "-q", "-m", message)
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def repo(tmp_path):
    path = tmp_path / "repo"
    path.mkdir()
    run_git(path, "init", "-q")
    run_git(path, "config", "user.name", "Test User")
    run_git(path, "config", "user.email", "test@example.com")
    run_git(path, "config", "commit.gpgsign", "false")
    run_git(path, "config", "core.hooksPath", "/dev/null")
    return Repo(path)


@pytest.fixture
def env(repo):
    return Environment(root=str(repo.path), tool={"name": "test"}, environ={})


@pytest.fixture
def git(env):
    return Git(env.root, timeout=env.git_timeout)


@pytest.fixture
def store(git, env):
    return NotesStore(git, env.notes_ref)


@pytest.fixture
def make_record():
    """Factory for valid trace records with one file and one conversation."""

    def factory(
        path="src/a.py",
        ranges=((1, 10),),
        *,
        contributor_type="ai",
        model_id="anthropic/claude-sonnet-4",
        url=None,
        conversation_id=None,
        timestamp="2026-01-23T06:30:00Z",
        tool="cursor",
        record_id=None,
    ):
        contributor = {"type": contributor_type}
        if model_id:
            contributor["model_id"] = model_id
        conversation = {
            "contributor": contributor,
            "ranges": [{"start_line": s, "end_line": e} for s, e in ranges],
        }
        if url:
            conversation["url"] = url
        record = {
            "version": "1.0.0",
            "id": record_id or str(uuid.uuid4()),
            "timestamp": timestamp,
            "tool": {"name": tool},
            "files": [{"path": path, "conversations": [conversation]}] if path else [],
        }
        if conversation_id:
            record["metadata"] = {"conversation_id": conversation_id}
        return record

    return factory
