from __future__ import annotations

import asyncio
import json
import queue
import time
from typing import AsyncGenerator, Optional

from opsboard.logs.feed import FeedUpdate, LogFeed


def feed_event(update: FeedUpdate) -> str:
    payload = {
        "sequence": update.sequence,
        "mode": update.mode,
        "total": len(update.entries),
        "added": [e.model_dump(mode="json") for e in update.added],
    }
    return f"event: logs\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


async def stream_feed_sse(
    feed: LogFeed,
    *,
    poll_interval_s: float = 0.5,
    ping_interval_s: float = 15.0,
    max_events: Optional[int] = None,
) -> AsyncGenerator[str, None]:
    """
    SSE stream of feed notifications. Publishers run on poller threads, so updates are handed over
    through a thread-safe queue and drained from the event loop.
    """
    updates: "queue.Queue[FeedUpdate]" = queue.Queue()
    unsubscribe = feed.subscribe(updates.put)
    sent = 0
    try:
        # Subscribed before the first chunk: nothing published after "hello" is missed.
        yield ": hello\n\n"
        last_ping = time.monotonic()
        while max_events is None or sent < max_events:
            try:
                update = updates.get_nowait()
            except queue.Empty:
                if time.monotonic() - last_ping > ping_interval_s:
                    yield ": ping\n\n"
                    last_ping = time.monotonic()
                await asyncio.sleep(poll_interval_s)
                continue
            yield feed_event(update)
            sent += 1
    finally:
        unsubscribe()
