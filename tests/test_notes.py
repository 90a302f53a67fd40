import json

import pytest

from tracenotes.errors import GitError, NotesWriteError
from tracenotes.notes import NotesStore, parse_note


def _add_raw_note(repo, ref, revision, body):
    repo.git("notes", "--ref", ref, "add", "-f", "-F", "-", revision, input=body)


def test_read_without_note_is_empty(repo, store):
    head = repo.commit({"a.txt": "a\n"})
    assert store.read(head) == []


def test_read_unknown_revision_is_empty(repo, store):
    repo.commit({"a.txt": "a\n"})
    assert store.read("no-such-branch") == []


def test_read_accepts_array_and_single_object(repo, store, make_record):
    first = repo.commit({"a.txt": "a\n"})
    second = repo.commit({"b.txt": "b\n"})
    one, two = make_record(url="file:///1"), make_record(url="file:///2")

    _add_raw_note(repo, store.ref, first, json.dumps([one, two]))
    _add_raw_note(repo, store.ref, second, json.dumps(one))

    assert store.read(first) == [one, two]
    assert store.read(second) == [one]


def test_invalid_records_in_a_note_are_skipped(repo, store, make_record):
    head = repo.commit({"a.txt": "a\n"})
    good = make_record()
    _add_raw_note(repo, store.ref, head, json.dumps([good, {"id": "broken"}]))
    assert store.read(head) == [good]


def test_parse_note_tolerates_garbage():
    assert parse_note("not json", "abc") == []
    assert parse_note("   ") == []


def test_write_then_read(repo, store, make_record):
    head = repo.commit({"a.txt": "a\n"})
    record = make_record(url="file:///t")
    assert store.write(head, [record]) == [record]
    assert store.read(head) == [record]
    assert store.has_traces(head)


def test_write_consolidates_with_existing_note(repo, store, make_record):
    head = repo.commit({"a.txt": "a\n"})
    store.write(head, [make_record(url="file:///t", ranges=((1, 3),))])
    store.write(head, [make_record(url="file:///t", ranges=((5, 8),))])

    records = store.read(head)
    assert len(records) == 1
    ranges = records[0]["files"][0]["conversations"][0]["ranges"]
    assert [(r["start_line"], r["end_line"]) for r in ranges] == [(1, 3), (5, 8)]


def test_write_is_idempotent(repo, store, make_record):
    head = repo.commit({"a.txt": "a\n"})
    records = [make_record(url="file:///a"), make_record(url="file:///b")]
    store.write(head, records)
    note_before = repo.git("notes", "--ref", store.ref, "show", head)

    store.write(head, records)

    assert repo.git("notes", "--ref", store.ref, "show", head) == note_before


def test_write_to_unknown_revision_is_a_hard_error(repo, store, make_record):
    repo.commit({"a.txt": "a\n"})
    with pytest.raises(GitError):
        store.write("no-such-branch", [make_record()])


def test_revisions_lists_annotated_commits(repo, store, make_record):
    first = repo.commit({"a.txt": "a\n"})
    repo.commit({"b.txt": "b\n"})
    third = repo.commit({"c.txt": "c\n"})
    store.write(first, [make_record()])
    store.write(third, [make_record()])

    assert sorted(store.revisions()) == sorted([first, third])
    meta = {m["commit"]: m["trace_count"] for m in store.revisions_with_metadata()}
    assert meta == {first: 1, third: 1}


def test_read_range_collects_commits_in_range(repo, store, make_record):
    base = repo.commit({"a.txt": "a\n"})
    second = repo.commit({"b.txt": "b\n"})
    third = repo.commit({"c.txt": "c\n"})
    store.write(base, [make_record(url="file:///base")])
    store.write(second, [make_record(url="file:///second")])
    store.write(third, [make_record(url="file:///third")])

    urls = {
        r["files"][0]["conversations"][0]["url"]
        for r in store.read_range(base, "HEAD")
    }
    assert urls == {"file:///second", "file:///third"}


def test_revisions_without_ref_is_empty(repo, store):
    repo.commit({"a.txt": "a\n"})
    assert store.revisions() == []


def test_ensure_ready_in_empty_repository(repo, store):
    store.ensure_ready()
    assert store.ref_exists()
    assert store.revisions() == []

    # idempotent
    store.ensure_ready()
    assert store.ref_exists()


def test_ensure_ready_with_head_leaves_no_note(repo, store):
    head = repo.commit({"a.txt": "a\n"})
    store.ensure_ready()
    assert store.ref_exists()
    assert store.read(head) == []
    assert repo.git("cat-file", "-t", store.ref) == "commit"


def test_placeholder_ref_is_upgraded_after_first_commit(repo, store, make_record):
    store.ensure_ready()
    assert repo.git("cat-file", "-t", store.ref) == "tree"

    head = repo.commit({"a.txt": "a\n"})
    store.ensure_ready()

    assert repo.git("cat-file", "-t", store.ref) == "commit"
    store.write(head, [make_record()])
    assert len(store.read(head)) == 1


def test_broken_ref_is_repaired_on_write(repo, store, make_record):
    head = repo.commit({"a.txt": "a\n"})
    blob = repo.git("hash-object", "-w", "--stdin", input="not a notes tree\n")
    repo.git("update-ref", store.ref, blob)

    record = make_record()
    store.write(head, [record])

    assert store.read(head) == [record]
    assert repo.git("cat-file", "-t", store.ref) == "commit"


def test_custom_ref_does_not_touch_default_namespace(repo, git, make_record):
    head = repo.commit({"a.txt": "a\n"})
    custom = NotesStore(git, "refs/notes/custom-trace")
    custom.write(head, [make_record()])

    assert NotesStore(git).read(head) == []
    assert len(custom.read(head)) == 1


def test_write_failing_twice_raises_notes_write_error(repo, store, make_record, monkeypatch):
    head = repo.commit({"a.txt": "a\n"})
    attempts = []

    def failing_write(revision, records):
        attempts.append(revision)
        raise GitError(["notes", "add"], 128, "fatal: failed to read notes tree")

    monkeypatch.setattr(store, "_write_once", failing_write)

    with pytest.raises(NotesWriteError) as excinfo:
        store.write(head, [make_record()])

    assert attempts == [head, head]
    assert excinfo.value.returncode == 128
    assert "exited 128" in str(excinfo.value)
    assert "failed to read notes tree" in str(excinfo.value)


def _canonical(records):
    result = set()
    for record in records:
        merged = frozenset(record.get("metadata", {}).get("merged_ids", []))
        ranges = frozenset(
            (f["path"], c["contributor"]["type"], c["contributor"].get("model_id"),
             r["start_line"], r["end_line"])
            for f in record["files"]
            for c in f["conversations"]
            for r in c["ranges"]
        )
        result.add((record["id"], record["timestamp"], merged, ranges))
    return result


def test_write_order_does_not_change_the_stored_result(repo, store, make_record):
    first = repo.commit({"a.txt": "a\n"})
    second = repo.commit({"b.txt": "b\n"})
    a = make_record(conversation_id="c", ranges=((1, 2),))
    b = make_record(conversation_id="c", ranges=((4, 5),))
    c = make_record(conversation_id="c", ranges=((7, 9),))

    store.write(first, [a, b])
    store.write(first, [c])
    store.write(second, [a, c])
    store.write(second, [b])

    assert len(store.read(first)) == 1
    assert _canonical(store.read(first)) == _canonical(store.read(second))
