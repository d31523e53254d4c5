from __future__ import annotations

import json
from datetime import datetime, timezone

from opsboard.logs.normalizer import coerce_timestamp, is_self_traffic, normalize_log_record, normalize_logs
from opsboard.models import LogLevel
from opsboard.telemetry.audit import AuditLogger, tail_jsonl


NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_level_is_uppercased() -> None:
    out = normalize_logs([{"id": "a", "level": "warn", "service": "api", "message": "slow"}], now=NOW)
    assert out[0].level == LogLevel.WARN
    assert out[0].level.value == "WARN"


def test_unknown_or_missing_level_defaults_to_info() -> None:
    out = normalize_logs([{"id": "a", "level": "verbose"}, {"id": "b"}], now=NOW)
    assert {e.level for e in out} == {LogLevel.INFO}


def test_defaults_for_missing_fields() -> None:
    e = normalize_log_record({}, fallback_id="log-0", now=NOW)
    assert e.id == "log-0"
    assert e.service == "Unknown"
    assert e.message == ""
    assert e.component is None
    assert e.timestamp == NOW
    assert e.metadata is None
    assert e.stack_trace is None


def test_timestamp_representations() -> None:
    ms = 1_717_243_200_000  # 2024-06-01T12:00:00Z
    expected = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert coerce_timestamp(ms, now=NOW) == expected
    assert coerce_timestamp(str(ms), now=NOW) == expected
    assert coerce_timestamp("2024-06-01T12:00:00Z", now=NOW) == expected
    assert coerce_timestamp("2024-06-01T12:00:00", now=NOW) == expected
    assert coerce_timestamp("not a date", now=NOW) == NOW
    assert coerce_timestamp(None, now=NOW) == NOW


def test_metadata_json_string_is_parsed_and_bad_json_kept() -> None:
    good = normalize_log_record({"data": json.dumps({"path": "/x", "n": 1})}, fallback_id="x", now=NOW)
    assert good.metadata == {"path": "/x", "n": 1}
    bad = normalize_log_record({"data": "{not json"}, fallback_id="y", now=NOW)
    assert bad.metadata == "{not json"
    passthrough = normalize_log_record({"metadata": {"k": "v"}}, fallback_id="z", now=NOW)
    assert passthrough.metadata == {"k": "v"}


def test_stack_trace_accepts_both_spellings() -> None:
    a = normalize_log_record({"stackTrace": "Error: a"}, fallback_id="a", now=NOW)
    b = normalize_log_record({"stack_trace": "Error: b"}, fallback_id="b", now=NOW)
    assert a.stack_trace == "Error: a"
    assert b.stack_trace == "Error: b"


def test_synthesized_ids_are_unique_within_batch() -> None:
    raws = [{"message": "first"}, {"id": "log-1", "message": "explicit"}, {"message": "third"}, {"message": "fourth"}]
    out = normalize_logs(raws, now=NOW)
    ids = [e.id for e in out]
    assert len(ids) == len(set(ids)) == 4
    assert "log-1" in ids and "log-0" in ids


def test_self_traffic_never_reaches_canonical_set(tmp_path) -> None:
    audit = AuditLogger(str(tmp_path / "audit.jsonl"))
    raws = [
        {"id": "s1", "component": "RequestHandler", "data": json.dumps({"path": "/api/logs/stream", "method": "GET"})},
        {"id": "s2", "component": "RequestHandler", "metadata": {"path": "/health"}},
        {"id": "s3", "component": "RequestHandler", "metadata": {"path": "/api/health/dashboard", "method": "GET"}},
        # POST health checks are real user actions and stay.
        {"id": "k1", "component": "RequestHandler", "metadata": {"path": "/api/health/dashboard", "method": "POST"}},
        {"id": "k2", "component": "Worker", "metadata": {"path": "/api/logs"}},
        {"id": "k3", "component": "RequestHandler", "metadata": {"path": "/entities"}},
    ]
    out = normalize_logs(raws, now=NOW, audit=audit)
    assert sorted(e.id for e in out) == ["k1", "k2", "k3"]

    recs = tail_jsonl(audit.path)
    assert [r.event_type for r in recs] == ["logs.self_traffic_dropped"]
    assert recs[0].payload["count"] == 3


def test_is_self_traffic_requires_mapping_metadata() -> None:
    e = normalize_log_record({"component": "RequestHandler", "data": "{not json"}, fallback_id="x", now=NOW)
    assert is_self_traffic(e) is False


def test_sorted_most_recent_first_and_stable() -> None:
    raws = [
        {"id": "old", "timestamp": "2025-06-01T10:00:00Z"},
        {"id": "tie-a", "timestamp": "2025-06-01T11:00:00Z"},
        {"id": "new", "timestamp": "2025-06-01T11:30:00Z"},
        {"id": "tie-b", "timestamp": "2025-06-01T11:00:00Z"},
    ]
    out = normalize_logs(raws, now=NOW)
    assert [e.id for e in out] == ["new", "tie-a", "tie-b", "old"]


def test_non_mapping_records_are_ignored() -> None:
    out = normalize_logs([None, "garbage", {"id": "a"}], now=NOW)
    assert [e.id for e in out] == ["a"]


def test_empty_data_falls_back_to_metadata() -> None:
    e = normalize_log_record({"data": "", "metadata": {"k": 1}}, fallback_id="x", now=NOW)
    assert e.metadata == {"k": 1}


def test_health_self_traffic_matches_method_exactly() -> None:
    upper = normalize_log_record(
        {"component": "RequestHandler", "metadata": {"path": "/api/health/dashboard", "method": "GET"}},
        fallback_id="a",
        now=NOW,
    )
    lower = normalize_log_record(
        {"component": "RequestHandler", "metadata": {"path": "/api/health/dashboard", "method": "get"}},
        fallback_id="b",
        now=NOW,
    )
    assert is_self_traffic(upper) is True
    assert is_self_traffic(lower) is False
