from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from opsboard.models import LogEntry
from opsboard.telemetry.audit import AuditLogger


FEED_MODES = ("replace", "append")


@dataclass(frozen=True)
class FeedUpdate:
    sequence: int
    mode: str
    entries: List[LogEntry]  # canonical set after the update, most recent first
    added: List[LogEntry]  # entries whose ids were not present before


Subscriber = Callable[[FeedUpdate], None]


def merge_entries(current: Iterable[LogEntry], incoming: Iterable[LogEntry], *, max_entries: int) -> List[LogEntry]:
    """
    Incremental append: unseen ids join the set, known ids keep their existing record.
    """
    by_id: Dict[str, LogEntry] = {e.id: e for e in current}
    for e in incoming:
        by_id.setdefault(e.id, e)
    merged = sorted(by_id.values(), key=lambda e: e.timestamp, reverse=True)
    return merged[: max(0, max_entries)]


class LogFeed:
    """
    Subscribe/notify transport for the canonical log set.

    Producers (refresh and live pollers) publish normalized batches tagged with a sequence number;
    batches older than the last applied one are discarded. Subscribers are called outside the lock.
    """

    def __init__(
        self,
        *,
        mode: str = "replace",
        max_entries: int = 500,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        if mode not in FEED_MODES:
            raise ValueError(f"unknown feed mode: {mode}")
        self.mode = mode
        self.max_entries = max_entries
        self._audit = audit
        self._lock = threading.Lock()
        self._entries: List[LogEntry] = []
        self._last_sequence = 0
        self._subscribers: List[Subscriber] = []

    @property
    def entries(self) -> List[LogEntry]:
        with self._lock:
            return list(self._entries)

    @property
    def last_sequence(self) -> int:
        return self._last_sequence

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, batch: Iterable[LogEntry], *, sequence: int, mode: Optional[str] = None) -> Optional[FeedUpdate]:
        """
        Apply `batch` using `mode` (defaults to the feed's mode). Returns None for stale batches.
        """
        effective = mode or self.mode
        if effective not in FEED_MODES:
            raise ValueError(f"unknown feed mode: {effective}")
        incoming = list(batch)
        with self._lock:
            if sequence <= self._last_sequence:
                stale_of = self._last_sequence
                update = None
            else:
                before = {e.id for e in self._entries}
                if effective == "replace":
                    new_entries = incoming
                else:
                    new_entries = merge_entries(self._entries, incoming, max_entries=self.max_entries)
                self._entries = new_entries
                self._last_sequence = sequence
                update = FeedUpdate(
                    sequence=sequence,
                    mode=effective,
                    entries=list(new_entries),
                    added=[e for e in new_entries if e.id not in before],
                )
            subscribers = list(self._subscribers)

        if update is None:
            if self._audit is not None:
                self._audit.write("feed", "snapshot.stale_discarded", {"slice": "logs", "sequence": sequence, "applied": stale_of})
            return None

        for cb in subscribers:
            try:
                cb(update)
            except Exception as e:  # noqa: BLE001
                # Isolated per subscriber: publishers run on poller threads.
                if self._audit is not None:
                    self._audit.write("feed", "feed.subscriber_failed", {"error": f"{type(e).__name__}: {e}"})
        return update
