"""
tracenotes CLI: AI attribution stored in git notes.

Commands:
    tracenotes init                 Configure tracing for the current project
    tracenotes status               Show tracing status
    tracenotes validate             Check the project is set up (or validate a record file)
    tracenotes record               Record a trace from stdin (used by hooks)
    tracenotes attach-staging       Attach staged traces to HEAD (called by git hook)
    tracenotes analyze <target>     Attribute a commit's changed lines
    tracenotes report               Contribution report (AI vs human)
    tracenotes show <revision>      Print the trace records stored on a commit
    tracenotes dashboard            Serve the dashboard JSON API
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from . import __version__
from .config import DEFAULT_NOTES_REF, save_project_config
from .environment import Environment
from .errors import TraceNotesError
from .git import Git
from .hooks import configure_claude_hooks, configure_cursor_hooks, configure_git_hooks, hooks_status
from .queries import TraceQueries
from .record import record_from_stdin
from .report import filter_since, format_report
from .schema import iter_errors
from .server import serve

logger = logging.getLogger("tracenotes")


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------

def _configure_logging(verbose: bool = False) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("tracenotes: %(message)s"))
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _confirm(message, default=True, assume_yes=False):
    """Interactive yes / no prompt."""
    if assume_yes:
        return True
    hint = " [Y/n]" if default else " [y/N]"
    try:
        value = input(f"{message}{hint}: ").strip().lower()
    except (EOFError, KeyboardInterrupt):
        print()
        return False

    if not value:
        return default
    return value in ("y", "yes")


def _parse_since(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise TraceNotesError(f"invalid --since date: {value!r} (expected ISO format)") from exc


# ===================================================================
# init
# ===================================================================

def cmd_init(args, env: Environment):
    yes = getattr(args, "yes", False)
    root = Path(env.root)

    if env.project_config is None:
        path = save_project_config({"notes_ref": DEFAULT_NOTES_REF}, env.root)
        print(f"Configuration saved to {path.relative_to(root)}")
    else:
        print("tracenotes is already configured for this project.")

    git = Git(env.root, timeout=env.git_timeout)
    if git.succeeds("rev-parse", "--git-dir"):
        TraceQueries(env, git).ensure_ready()
        print(f"  -> Notes ref ready ({env.notes_ref})")

    print()
    if _confirm("Configure hook for Cursor?", assume_yes=yes):
        configure_cursor_hooks(env.root)
        print("  -> Cursor hooks configured (.cursor/hooks.json)")

    if _confirm("Configure hook for Claude Code?", assume_yes=yes):
        configure_claude_hooks(env.root)
        print("  -> Claude Code hooks configured (.claude/settings.json)")

    if (root / ".git").is_dir():
        if _confirm("Configure git post-commit hook? (attaches traces captured before the first commit)", assume_yes=yes):
            configure_git_hooks(env.root)
            print("  -> Git post-commit hook configured (.git/hooks/post-commit)")

    print("\ntracenotes initialized successfully!")
    return 0


# ===================================================================
# status
# ===================================================================

def cmd_status(_args, env: Environment):
    if env.project_config is None:
        print("tracenotes is not set up for this project.")
        print("Run 'tracenotes init' to get started.")
        return 0

    queries = TraceQueries(env)
    print("tracenotes status\n")
    print(f"  Root:         {env.root}")
    print(f"  Notes ref:    {env.notes_ref}")
    print(f"  Commits:      {len(queries.store.revisions())} with traces")
    print(f"  Staged:       {queries.staging.pending()} trace(s) awaiting a commit")

    status = hooks_status(env.root)
    print(f"\n  Cursor hook:       {'configured' if status['cursor'] else 'not configured'}")
    print(f"  Claude Code hook:  {'configured' if status['claude'] else 'not configured'}")
    print(f"  Git post-commit:   {'configured' if status['git'] else 'not configured'}")
    return 0


# ===================================================================
# validate
# ===================================================================

def _validate_file(path: str) -> int:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise TraceNotesError(f"cannot read {path}: {exc.strerror or exc}") from exc
    try:
        data = json.loads(text)
        candidates = data if isinstance(data, list) else [data]
    except json.JSONDecodeError:
        # JSON Lines, as written by the staging buffer
        try:
            candidates = [json.loads(line) for line in text.splitlines() if line.strip()]
        except json.JSONDecodeError as exc:
            raise TraceNotesError(f"{path} is not JSON or JSON Lines: {exc}") from exc

    invalid = 0
    for index, candidate in enumerate(candidates):
        errors = iter_errors(candidate)
        if errors:
            invalid += 1
            print(f"✗ record {index}:")
            for error in errors:
                print(f"    {error}")
    print(f"\n{len(candidates) - invalid}/{len(candidates)} record(s) valid")
    return 1 if invalid else 0


def cmd_validate(args, env: Environment):
    if getattr(args, "file", None):
        return _validate_file(args.file)

    print(f"Validating trace configuration for {env.root}\n")
    queries = TraceQueries(env)
    queries.ensure_ready()
    commits = queries.store.revisions()
    has_traces = bool(commits)
    if has_traces:
        print(f"✓ Git notes configured: {env.notes_ref}")
        print(f"  {len(commits)} commit(s) with traces")
    else:
        print("⚠ Git notes configured but no traces found yet")

    status = hooks_status(env.root)
    has_hooks = status["cursor"] or status["claude"]
    print()
    print(f"{'✓' if status['cursor'] else '⚠'} Cursor hooks {'configured' if status['cursor'] else 'not found'}")
    print(f"{'✓' if status['claude'] else '⚠'} Claude Code hooks {'configured' if status['claude'] else 'not found'}")
    print()

    if has_traces and has_hooks:
        print("✓ Repository is properly configured for tracenotes!")
        return 0
    if has_traces:
        print("⚠ Traces exist but hooks may not be configured.")
        print("  Run 'tracenotes init' to configure hooks.")
    elif has_hooks:
        print("⚠ Hooks are configured but no traces found yet.")
        print("  Traces will be created when AI tools modify files.")
    else:
        print("✗ tracenotes is not configured.")
        print("  Run 'tracenotes init' to configure hooks.")
    return 1 if args.strict else 0


# ===================================================================
# record / attach-staging  (called by hooks, never fail the caller)
# ===================================================================

def cmd_record(_args, env: Environment):
    try:
        record_from_stdin(env)
    except Exception:
        logger.debug("record failed", exc_info=True)
    return 0


def cmd_attach_staging(_args, env: Environment):
    try:
        queries = TraceQueries(env)
        head = queries.git.head()
        if head is None:
            return 0
        count = queries.staging.drain_into(head)
        if count:
            print(f"tracenotes: attached {count} staged trace(s) to {head[:8]}")
    except Exception:
        logger.warning("could not attach staged traces", exc_info=logger.isEnabledFor(logging.DEBUG))
    return 0


# ===================================================================
# analyze
# ===================================================================

def cmd_analyze(args, env: Environment):
    result = TraceQueries(env).analyze_commit(args.target)

    if args.json:
        print(json.dumps(result, indent=2))
        return 0

    print("Agent Trace Analysis\n")
    print(f"Target: {args.target}")
    print(f"Commit: {result['commit']}")
    if result.get("message"):
        print(f"Message: {result['message']}")
    print()

    if not result["files"]:
        print("⚠ No files with traces found.")
        return 0

    print("Files analyzed:\n")
    total_ai = total_human = 0
    for path, attribution in result["files"].items():
        ranges = attribution["ranges"]
        ai = sum(1 for r in ranges if r["contributor"]["type"] == "ai")
        human = sum(1 for r in ranges if r["contributor"]["type"] == "human")
        total_ai += ai
        total_human += human
        print(f"  {path}")
        print(f"    AI: {ai} | Human: {human} | Total: {len(ranges)}")
        if attribution["models"]:
            print(f"    Models: {', '.join(attribution['models'])}")
        print()

    print("Summary:")
    print(f"  Total AI contributions: {total_ai}")
    print(f"  Total human contributions: {total_human}")
    print(f"  Files analyzed: {len(result['files'])}")
    return 0


# ===================================================================
# report
# ===================================================================

def cmd_report(args, env: Environment):
    queries = TraceQueries(env)
    if args.from_rev:
        records = queries.read_range(args.from_rev, args.to_rev)
    else:
        records = queries.read_all()

    if args.since:
        records = filter_since(records, _parse_since(args.since))

    stats = queries.summarize(records)
    if args.json:
        print(json.dumps(stats, indent=2))
    else:
        print(format_report(stats, since=args.since))
    return 0


# ===================================================================
# show
# ===================================================================

def cmd_show(args, env: Environment):
    queries = TraceQueries(env)
    commit = queries.git.resolve_commit(args.revision)
    print(json.dumps(queries.read_all(commit), indent=2))
    return 0


# ===================================================================
# dashboard
# ===================================================================

def cmd_dashboard(args, env: Environment):
    serve(env, port=args.port)
    return 0


# ===================================================================
# Entry point
# ===================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tracenotes",
        description="tracenotes: AI code attribution stored in git notes",
    )
    parser.add_argument(
        "--version", action="version", version=f"tracenotes {__version__}",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug output")

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    sub_init = sub.add_parser("init", help="Configure tracenotes for the current project")
    sub_init.add_argument("--yes", "-y", action="store_true", help="Configure every hook without asking")

    sub.add_parser("status", help="Show tracenotes status")

    sub_validate = sub.add_parser("validate", help="Check tracing is configured, or validate a record file")
    sub_validate.add_argument("--strict", action="store_true", default=False,
                              help="Exit with an error if tracing is not fully configured")
    sub_validate.add_argument("--file", "-f", default=None,
                              help="Validate trace records in a JSON / JSON Lines file instead")

    sub.add_parser("record", help="Record a trace from stdin (used by hooks)")
    sub.add_parser("attach-staging", help="Attach staged traces to HEAD (called by git hook)")

    sub_analyze = sub.add_parser("analyze", help="Attribute the lines a commit changed")
    sub_analyze.add_argument("target", help="Commit SHA, branch name, or HEAD")
    sub_analyze.add_argument("--json", action="store_true", default=False, help="Output as JSON")

    sub_report = sub.add_parser("report", help="Contribution report (AI vs human)")
    sub_report.add_argument("--json", action="store_true", default=False, help="Output as JSON")
    sub_report.add_argument("--since", default=None, help="Only include traces since date (ISO format)")
    sub_report.add_argument("--from", dest="from_rev", default=None,
                            help="Only include commits after this revision")
    sub_report.add_argument("--to", dest="to_rev", default="HEAD",
                            help="End of the commit range (default: HEAD)")

    sub_show = sub.add_parser("show", help="Print the trace records stored on a commit")
    sub_show.add_argument("revision", help="Commit SHA, branch name, or HEAD")

    sub_dashboard = sub.add_parser("dashboard", help="Serve the dashboard JSON API")
    sub_dashboard.add_argument("--port", "-p", type=int, default=None,
                               help="Port to listen on (default: 3000 or TRACENOTES_PORT)")

    return parser


COMMANDS = {
    "init": cmd_init,
    "status": cmd_status,
    "validate": cmd_validate,
    "record": cmd_record,
    "attach-staging": cmd_attach_staging,
    "analyze": cmd_analyze,
    "report": cmd_report,
    "show": cmd_show,
    "dashboard": cmd_dashboard,
}


def main(argv=None, env: Environment | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if args.command is None:
        parser.print_help()
        return 0

    if env is None:
        env = Environment.detect()
    try:
        return COMMANDS[args.command](args, env)
    except TraceNotesError as exc:
        print(f"tracenotes: error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
