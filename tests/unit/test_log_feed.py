from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from opsboard.logs.feed import FeedUpdate, LogFeed, merge_entries
from opsboard.models import LogEntry
from opsboard.telemetry.audit import AuditLogger, tail_jsonl


NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _log(id: str, seconds_ago: int, message: str = "m") -> LogEntry:
    return LogEntry(id=id, timestamp=NOW - timedelta(seconds=seconds_ago), service="api", message=message)


def test_replace_mode_supersedes_wholesale() -> None:
    feed = LogFeed()
    feed.publish([_log("a", 5), _log("b", 4)], sequence=1)
    update = feed.publish([_log("c", 1)], sequence=2)
    assert update is not None
    assert [e.id for e in feed.entries] == ["c"]
    assert [e.id for e in update.added] == ["c"]


def test_append_mode_merges_new_ids_sorted_and_capped() -> None:
    feed = LogFeed(mode="append", max_entries=3)
    feed.publish([_log("a", 30), _log("b", 20)], sequence=1)
    update = feed.publish([_log("b", 20, "changed"), _log("c", 10), _log("d", 1)], sequence=2)
    assert update is not None
    assert [e.id for e in feed.entries] == ["d", "c", "b"]
    assert {e.id for e in update.added} == {"c", "d"}
    # Known ids keep their first-seen record.
    assert next(e for e in feed.entries if e.id == "b").message == "m"


def test_stale_batches_are_discarded(tmp_path) -> None:
    audit = AuditLogger(str(tmp_path / "audit.jsonl"))
    feed = LogFeed(audit=audit)
    seen: List[FeedUpdate] = []
    feed.subscribe(seen.append)
    feed.publish([_log("new", 1)], sequence=5)
    assert feed.publish([_log("old", 60)], sequence=3) is None
    assert [e.id for e in feed.entries] == ["new"]
    assert len(seen) == 1
    recs = tail_jsonl(audit.path)
    assert recs[-1].event_type == "snapshot.stale_discarded"
    assert recs[-1].payload == {"slice": "logs", "sequence": 3, "applied": 5}


def test_unsubscribe_and_failing_subscriber(tmp_path) -> None:
    audit = AuditLogger(str(tmp_path / "audit.jsonl"))
    feed = LogFeed(audit=audit)
    got: List[int] = []

    def boom(update: FeedUpdate) -> None:
        raise RuntimeError("consumer broke")

    feed.subscribe(boom)
    unsubscribe = feed.subscribe(lambda u: got.append(u.sequence))
    feed.publish([], sequence=1)
    unsubscribe()
    feed.publish([], sequence=2)
    assert got == [1]
    assert any(r.event_type == "feed.subscriber_failed" for r in tail_jsonl(audit.path))


def test_per_publish_mode_override() -> None:
    feed = LogFeed(mode="append")
    feed.publish([_log("a", 5)], sequence=1)
    feed.publish([_log("b", 1)], sequence=2, mode="replace")
    assert [e.id for e in feed.entries] == ["b"]


def test_unknown_mode_rejected() -> None:
    with pytest.raises(ValueError):
        LogFeed(mode="merge")


def test_merge_entries_caps_at_zero() -> None:
    assert merge_entries([_log("a", 1)], [_log("b", 2)], max_entries=0) == []
