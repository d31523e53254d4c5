from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import List

from opsboard.logs.feed import LogFeed
from opsboard.models import LogEntry
from opsboard.service.stream import stream_feed_sse


NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_stream_emits_hello_then_feed_updates() -> None:
    feed = LogFeed(mode="append")

    async def collect() -> List[str]:
        gen = stream_feed_sse(feed, poll_interval_s=0.01, max_events=2)
        chunks = [await gen.__anext__()]
        feed.publish([LogEntry(id="a", timestamp=NOW, service="s")], sequence=1)
        feed.publish([LogEntry(id="b", timestamp=NOW, service="s")], sequence=2)
        async for chunk in gen:
            chunks.append(chunk)
        return chunks

    chunks = asyncio.run(asyncio.wait_for(collect(), timeout=5.0))
    assert chunks[0] == ": hello\n\n"
    assert len(chunks) == 3
    first = json.loads(chunks[1].split("data: ", 1)[1])
    second = json.loads(chunks[2].split("data: ", 1)[1])
    assert chunks[1].startswith("event: logs\n")
    assert (first["sequence"], first["total"], [e["id"] for e in first["added"]]) == (1, 1, ["a"])
    assert (second["sequence"], second["total"], [e["id"] for e in second["added"]]) == (2, 2, ["b"])
    # Stream ended: its subscription is gone.
    assert feed._subscribers == []


def test_stale_publish_not_streamed() -> None:
    feed = LogFeed()

    async def collect() -> List[str]:
        gen = stream_feed_sse(feed, poll_interval_s=0.01, max_events=1)
        chunks = [await gen.__anext__()]
        feed.publish([LogEntry(id="new", timestamp=NOW, service="s")], sequence=5)
        feed.publish([LogEntry(id="old", timestamp=NOW, service="s")], sequence=3)
        async for chunk in gen:
            chunks.append(chunk)
        return chunks

    chunks = asyncio.run(asyncio.wait_for(collect(), timeout=5.0))
    assert len(chunks) == 2
    assert json.loads(chunks[1].split("data: ", 1)[1])["sequence"] == 5
