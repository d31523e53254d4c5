from __future__ import annotations

import itertools
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from opsboard.logs.feed import LogFeed
from opsboard.models import Entity, LogEntry, LogStats, Relation
from opsboard.telemetry.audit import AuditLogger
from opsboard.upstream.snapshot import DashboardSnapshot, SliceResult


class RequestSequencer:
    """
    Hands out strictly increasing tickets. A response is applied only if its ticket is newer than
    the last one applied for the same slice, so a slow early fetch cannot overwrite newer state.
    """

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            return next(self._counter)


class DashboardStore:
    """
    Last applied value of every upstream slice. Logs live in the LogFeed; everything else here.

    A slice is replaced only by a newer ticket that did not fail in transport. Failed slices keep
    the previous value, which is what "skip the cycle, keep the display" amounts to.
    """

    def __init__(self, *, feed: LogFeed, sequencer: Optional[RequestSequencer] = None, audit: Optional[AuditLogger] = None) -> None:
        self.feed = feed
        self.sequencer = sequencer or RequestSequencer()
        self._audit = audit
        self._lock = threading.RLock()
        self._applied: Dict[str, int] = {}

        self.entities: List[Entity] = []
        self.relations: List[Relation] = []
        self.health: Dict[str, Any] = {}
        self.stats: Optional[LogStats] = None
        # False until a health response with a status has been applied, and after any failed health fetch.
        self.health_available = False
        self.last_errors: Dict[str, str] = {}
        self.last_refresh: Optional[datetime] = None

    @property
    def logs(self) -> List[LogEntry]:
        return self.feed.entries

    def errors(self) -> Dict[str, str]:
        with self._lock:
            return dict(self.last_errors)

    def _accept(self, result: SliceResult[Any]) -> bool:
        if result.error:
            self.last_errors[result.name] = result.error
        else:
            self.last_errors.pop(result.name, None)
        if not result.ok:
            return False
        applied = self._applied.get(result.name, 0)
        if result.ticket <= applied:
            if self._audit is not None:
                self._audit.write(
                    "store",
                    "snapshot.stale_discarded",
                    {"slice": result.name, "sequence": result.ticket, "applied": applied},
                )
            return False
        self._applied[result.name] = result.ticket
        return True

    def apply_snapshot(self, snapshot: DashboardSnapshot) -> List[str]:
        """
        Returns the names of the slices that changed.
        """
        changed: List[str] = []
        with self._lock:
            if not snapshot.health.ok:
                self.health_available = False
            if self._accept(snapshot.health):
                self.health = snapshot.health.value
                self.health_available = bool(self.health.get("status"))
                changed.append("health")
            if self._accept(snapshot.entities):
                self.entities = snapshot.entities.value
                changed.append("entities")
            if self._accept(snapshot.relations):
                self.relations = snapshot.relations.value
                changed.append("relations")
            if self._accept(snapshot.stats):
                self.stats = snapshot.stats.value
                changed.append("stats")
            self.last_refresh = snapshot.fetched_at

        # Regular refresh supersedes the log set wholesale, whatever the live feed mode.
        if self.apply_logs(snapshot.logs, mode="replace"):
            changed.append("logs")
        return changed

    def apply_logs(self, result: SliceResult[List[LogEntry]], *, mode: Optional[str] = None) -> bool:
        # Called from the live poller thread as well as from apply_snapshot.
        with self._lock:
            if result.error:
                self.last_errors["logs"] = result.error
            else:
                self.last_errors.pop("logs", None)
        if not result.ok:
            return False
        return self.feed.publish(result.value, sequence=result.ticket, mode=mode) is not None
