import io
import json

from tracenotes.cli import main
from tracenotes.staging import StagingBuffer


def test_no_command_prints_help(env, capsys):
    assert main([], env=env) == 0
    assert "usage: tracenotes" in capsys.readouterr().out


def test_init_configures_everything(repo, env, capsys):
    assert main(["init", "--yes"], env=env) == 0

    assert (repo.path / ".agent-trace" / "config.json").exists()
    assert (repo.path / ".cursor" / "hooks.json").exists()
    assert (repo.path / ".claude" / "settings.json").exists()
    assert (repo.path / ".git" / "hooks" / "post-commit").exists()
    assert "initialized successfully" in capsys.readouterr().out


def test_status_before_init(env, capsys):
    assert main(["status"], env=env) == 0
    assert "not set up" in capsys.readouterr().out


def test_validate_strict_fails_when_unconfigured(env, capsys):
    assert main(["validate"], env=env) == 0
    assert main(["validate", "--strict"], env=env) == 1
    assert "not configured" in capsys.readouterr().out


def test_validate_file(tmp_path, env, make_record, capsys):
    good = tmp_path / "good.json"
    good.write_text(json.dumps([make_record(), make_record()]))
    bad = tmp_path / "bad.jsonl"
    bad.write_text(json.dumps(make_record()) + "\n" + json.dumps({"version": "x"}) + "\n")

    assert main(["validate", "--file", str(good)], env=env) == 0
    assert main(["validate", "--file", str(bad)], env=env) == 1
    assert "1/2 record(s) valid" in capsys.readouterr().out


def test_record_never_fails(env, monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("definitely not json"))
    assert main(["record"], env=env) == 0


def test_attach_staging_moves_buffer_to_head(repo, env, store, make_record, capsys):
    StagingBuffer(env, store).append(make_record())
    head = repo.commit({"a.txt": "a\n"})

    assert main(["attach-staging"], env=env) == 0

    assert len(store.read(head)) == 1
    assert "attached 1 staged trace(s)" in capsys.readouterr().out


def test_analyze_json(repo, env, store, make_record, capsys):
    head = repo.commit({"a.py": "x\ny\n"})
    store.write(head, [make_record(path="a.py", ranges=((1, 2),))])

    assert main(["analyze", "HEAD", "--json"], env=env) == 0

    result = json.loads(capsys.readouterr().out)
    assert result["commit"] == head
    assert list(result["files"]) == ["a.py"]


def test_analyze_text_prints_summary(repo, env, store, make_record, capsys):
    head = repo.commit({"a.py": "x\ny\nz\n"})
    store.write(head, [
        make_record(path="a.py", ranges=((1, 2),)),
        make_record(path="a.py", ranges=((3, 3),), contributor_type="human", model_id=None),
    ])

    assert main(["analyze", "HEAD"], env=env) == 0

    out = capsys.readouterr().out
    assert "Summary:" in out
    assert "Total AI contributions: 1" in out
    assert "Total human contributions: 1" in out
    assert "Files analyzed: 1" in out


def test_analyze_unknown_target_is_an_error(repo, env, capsys):
    repo.commit({"a.txt": "a\n"})
    assert main(["analyze", "nope"], env=env) == 1
    assert capsys.readouterr().err.startswith("tracenotes: error: ")


def test_report_json_includes_staged_records(repo, env, store, make_record, capsys):
    head = repo.commit({"a.txt": "a\n"})
    store.write(head, [make_record(url="file:///1")])
    StagingBuffer(env, store).append(make_record(url="file:///2", tool="claude-code"))

    assert main(["report", "--json"], env=env) == 0

    stats = json.loads(capsys.readouterr().out)
    assert stats["total_records"] == 2
    assert stats["traces_by_tool"] == {"cursor": 1, "claude-code": 1}


def test_report_since_filters(repo, env, store, make_record, capsys):
    head = repo.commit({"a.txt": "a\n"})
    store.write(head, [
        make_record(url="file:///old", timestamp="2025-06-01T00:00:00Z"),
        make_record(url="file:///new", timestamp="2026-02-01T00:00:00Z"),
    ])

    assert main(["report", "--json", "--since", "2026-01-01"], env=env) == 0
    assert json.loads(capsys.readouterr().out)["total_records"] == 1

    assert main(["report", "--since", "last tuesday"], env=env) == 1


def test_show_prints_records(repo, env, store, make_record, capsys):
    head = repo.commit({"a.txt": "a\n"})
    record = make_record()
    store.write(head, [record])

    assert main(["show", head[:10]], env=env) == 0
    assert json.loads(capsys.readouterr().out) == [record]
