from datetime import datetime, timezone

from tracenotes.report import filter_since, format_report, summarize


def test_summarize_counts_ranges_models_and_tools(make_record):
    records = [
        make_record(path="a.py", ranges=((1, 2), (5, 6)), tool="cursor"),
        make_record(path="b.py", ranges=((1, 1),), contributor_type="human", model_id=None, tool="cursor"),
        make_record(path="a.py", ranges=((9, 9),), model_id="openai/gpt-4o", tool="claude-code"),
        make_record(path=None, tool="claude-code"),
    ]

    stats = summarize(records)

    assert stats["total_records"] == 4
    assert stats["distinct_files"] == 2
    assert stats["counts_by_contributor_type"] == {"human": 1, "ai": 3, "mixed": 0, "unknown": 0}
    assert stats["ranges_by_model"] == {"anthropic/claude-sonnet-4": 2, "openai/gpt-4o": 1}
    assert stats["traces_by_tool"] == {"cursor": 2, "claude-code": 2}


def test_summarize_is_order_independent(make_record):
    records = [make_record(ranges=((i, i),), tool=f"t{i % 2}") for i in range(1, 6)]
    assert summarize(records) == summarize(list(reversed(records)))


def test_range_override_is_counted_as_its_own_contributor(make_record):
    record = make_record(ranges=((1, 2), (3, 4)))
    record["files"][0]["conversations"][0]["ranges"][1]["contributor"] = {"type": "human"}

    stats = summarize([record])

    assert stats["counts_by_contributor_type"]["ai"] == 1
    assert stats["counts_by_contributor_type"]["human"] == 1
    assert stats["ranges_by_model"] == {"anthropic/claude-sonnet-4": 1}


def test_empty_input():
    stats = summarize([])
    assert stats["total_records"] == 0
    assert set(stats["counts_by_contributor_type"]) == {"human", "ai", "mixed", "unknown"}


def test_filter_since(make_record):
    old = make_record(timestamp="2025-12-31T23:59:59Z")
    new = make_record(timestamp="2026-01-01T00:00:00Z")
    since = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert filter_since([old, new], since) == [new]
    assert filter_since([old, new], datetime(2026, 1, 1)) == [new]


def test_format_report_ranks_models_by_count(make_record):
    records = [
        make_record(ranges=((1, 1),), model_id="b/model"),
        make_record(ranges=((1, 1), (2, 2)), model_id="a/model"),
    ]
    text = format_report(summarize(records), since="2026-01-01")

    assert "Period: since 2026-01-01" in text
    assert text.index("a/model: 2 ranges") < text.index("b/model: 1 ranges")
    assert "cursor: 2 traces" in text
