import copy
import json

import pytest

from tracenotes.errors import RecordValidationError
from tracenotes.notes import serialize_records
from tracenotes.schema import is_valid, iter_errors, parse_timestamp, validate


def test_valid_record_is_returned_unchanged(make_record):
    record = make_record()
    snapshot = copy.deepcopy(record)
    assert validate(record) is record
    assert record == snapshot


def test_empty_files_is_a_session_level_record(make_record):
    assert is_valid(make_record(path=None))


def test_serialized_record_validates_to_itself(make_record):
    record = make_record(url="file:///tmp/t.jsonl", conversation_id="c1")
    restored = json.loads(serialize_records([record]))[0]
    assert validate(restored) == record


@pytest.mark.parametrize("version", ["1.0", "v1.0.0", "1.0.0-beta", ""])
def test_bad_version_is_rejected(make_record, version):
    record = make_record()
    record["version"] = version
    assert not is_valid(record)


def test_bad_id_is_rejected(make_record):
    record = make_record(record_id="not-a-uuid")
    with pytest.raises(RecordValidationError) as excinfo:
        validate(record)
    assert any(e.startswith("id:") for e in excinfo.value.errors)


@pytest.mark.parametrize(
    "timestamp",
    ["yesterday", "2026-01-23", "2026-01-23 06:30:00", "2026-13-01T00:00:00Z"],
)
def test_bad_timestamp_is_rejected(make_record, timestamp):
    assert not is_valid(make_record(timestamp=timestamp))


def test_missing_required_fields_are_all_reported():
    errors = iter_errors({"version": "1.0.0"})
    assert any("'id' is a required property" in e for e in errors)
    assert any("'timestamp' is a required property" in e for e in errors)
    assert any("'files' is a required property" in e for e in errors)


def test_start_line_must_be_positive(make_record):
    assert not is_valid(make_record(ranges=((0, 3),)))


def test_end_line_before_start_line_is_rejected(make_record):
    errors = iter_errors(make_record(ranges=((5, 2),)))
    assert errors == ["files[0].conversations[0].ranges[0]: end_line 2 is before start_line 5"]


def test_single_line_range_is_valid(make_record):
    assert is_valid(make_record(ranges=((7, 7),)))


def test_unknown_contributor_type_is_rejected(make_record):
    assert not is_valid(make_record(contributor_type="robot"))


def test_range_level_contributor_override_is_valid(make_record):
    record = make_record()
    record["files"][0]["conversations"][0]["ranges"][0]["contributor"] = {"type": "human"}
    assert is_valid(record)


def test_non_object_is_rejected():
    assert iter_errors([1, 2]) == ["<record>: [1, 2] is not of type 'object'"]


def test_parse_timestamp_normalises_zulu_and_long_fractions():
    parsed = parse_timestamp("2026-01-23T06:30:00.123456789Z")
    assert parsed.utcoffset().total_seconds() == 0
    assert parsed.microsecond == 123456


def test_parse_timestamp_keeps_offsets():
    early = parse_timestamp("2026-01-23T08:00:00+02:00")
    late = parse_timestamp("2026-01-23T07:00:00Z")
    assert early < late
