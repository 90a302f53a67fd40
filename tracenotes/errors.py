"""Exception types shared across tracenotes."""

from __future__ import annotations


class TraceNotesError(Exception):
    """Base class for tracenotes errors."""


class GitError(TraceNotesError):
    """A git invocation exited non-zero (or could not run at all)."""

    def __init__(self, args, returncode: int | None, stderr: str = ""):
        self.git_args = list(args)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        command = " ".join(["git", *self.git_args])
        status = "timed out" if returncode is None else f"exited {returncode}"
        message = f"{command} {status}"
        if self.stderr:
            message += f": {self.stderr}"
        super().__init__(message)


class NotesWriteError(GitError):
    """Writing a note failed even after repairing the notes ref."""


class RecordValidationError(TraceNotesError):
    """A candidate trace record does not match the record schema."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "invalid trace record")
