from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from opsboard.logs.feed import FeedUpdate
from opsboard.logs.filters import DisplayWindow, LogFilter, filter_logs, is_near_end
from opsboard.logs.service_panel import ServicePanelState
from opsboard.logs.services import DEFAULT_ACTIVE_WINDOW, aggregate_services
from opsboard.models import LogEntry, LogLevel, ServiceInfo
from opsboard.settings import Settings


@dataclass(frozen=True)
class LogView:
    entries: List[LogEntry]
    visible_count: int
    filtered_count: int
    total_count: int
    has_more: bool
    live: bool
    filter: LogFilter


class LogPipeline:
    """
    Filter/search state over the canonical log set plus the growing display window.

    The canonical set is only ever replaced (directly or through a LogFeed update); user input
    changes the filter and the window, never the entries themselves.
    """

    def __init__(
        self,
        *,
        display_initial: int = 100,
        display_increment: int = 50,
        scroll_threshold: float = 50,
        active_window: timedelta = DEFAULT_ACTIVE_WINDOW,
    ) -> None:
        self._lock = threading.RLock()
        self._entries: List[LogEntry] = []
        self._filter = LogFilter()
        self._window = DisplayWindow(initial=display_initial, increment=display_increment)
        self._scroll_threshold = scroll_threshold
        self._active_window = active_window
        self.panel = ServicePanelState()
        self.live = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "LogPipeline":
        return cls(
            display_initial=settings.display_initial,
            display_increment=settings.display_increment,
            scroll_threshold=settings.scroll_threshold_px,
            active_window=timedelta(minutes=settings.active_window_minutes),
        )

    # --- canonical set ---

    @property
    def entries(self) -> List[LogEntry]:
        with self._lock:
            return list(self._entries)

    def replace_entries(self, entries: Iterable[LogEntry]) -> None:
        with self._lock:
            self._entries = list(entries)

    def on_feed_update(self, update: FeedUpdate) -> None:
        self.replace_entries(update.entries)

    # --- filter state ---

    @property
    def filter(self) -> LogFilter:
        return self._filter

    def set_filter(self, flt: LogFilter) -> None:
        with self._lock:
            if flt == self._filter:
                return
            self._filter = flt
            self._window.reset()

    def set_levels(self, levels: Iterable[LogLevel | str]) -> None:
        self.set_filter(replace(self._filter, levels=frozenset(LogLevel(lvl) for lvl in levels)))

    def toggle_level(self, level: LogLevel | str) -> None:
        lvl = LogLevel(level)
        self.set_filter(replace(self._filter, levels=self._filter.levels ^ {lvl}))

    def set_services(self, services: Iterable[str]) -> None:
        self.set_filter(replace(self._filter, services=frozenset(services)))

    def toggle_service(self, service: str) -> None:
        self.set_filter(replace(self._filter, services=self._filter.services ^ {service}))

    def select_all_services(self) -> None:
        self.set_services(s.service_name for s in self.services())

    def clear_services(self) -> None:
        self.set_services([])

    def set_search(self, text: str) -> None:
        self.set_filter(replace(self._filter, search=text or ""))

    def clear_filters(self) -> None:
        self.set_filter(LogFilter())

    # --- display window ---

    def filtered(self) -> List[LogEntry]:
        with self._lock:
            return filter_logs(self._entries, self._filter)

    @property
    def total_filtered(self) -> int:
        return len(self.filtered())

    @property
    def window_size(self) -> int:
        with self._lock:
            return self._window.size(self.total_filtered)

    def visible(self) -> List[LogEntry]:
        with self._lock:
            rows = self.filtered()
            return rows[: self._window.size(len(rows))]

    def load_more(self) -> bool:
        with self._lock:
            return self._window.grow(self.total_filtered)

    def on_scroll(self, scroll_top: float, client_height: float, scroll_height: float) -> bool:
        """
        Grow the window when the consumer is within the threshold of the rendered end.
        """
        if not is_near_end(scroll_top, client_height, scroll_height, threshold=self._scroll_threshold):
            return False
        return self.load_more()

    def view(self) -> LogView:
        with self._lock:
            rows = self.filtered()
            size = self._window.size(len(rows))
            return LogView(
                entries=rows[:size],
                visible_count=size,
                filtered_count=len(rows),
                total_count=len(self._entries),
                has_more=size < len(rows),
                live=self.live,
                filter=self._filter,
            )

    # --- derived services ---

    def services(self, *, now: Optional[datetime] = None) -> List[ServiceInfo]:
        return aggregate_services(self.entries, now=now, active_window=self._active_window)
