from __future__ import annotations

import random
import threading
from typing import List, Optional

import httpx

from opsboard.graph.controller import GraphController
from opsboard.graph.layout import Canvas
from opsboard.logs.feed import LogFeed
from opsboard.logs.pipeline import LogPipeline
from opsboard.models import LogEntry
from opsboard.poller.feed_poller import DashboardRefreshPoller, LiveFeedPoller
from opsboard.settings import Settings
from opsboard.state.overview import HealthCards, OverviewStats, derive_service_health, summarize_overview
from opsboard.state.preferences import PreferencesStore
from opsboard.state.store import DashboardStore, RequestSequencer
from opsboard.telemetry.audit import AuditLogger
from opsboard.upstream.client import KnowledgeGraphClient
from opsboard.upstream.snapshot import SLICES, DashboardSnapshot, SliceResult, fetch_logs_slice, fetch_snapshot


class DashboardRuntime:
    """
    Wires upstream client, store, feed, log pipeline, graph controller and the two pollers.

    Pollers run on their own threads; every piece of shared state they touch is lock-protected,
    which stands in for the single logical thread of an event loop.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.BaseTransport | None = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings
        self.audit = AuditLogger(settings.audit_log_path)
        self.client = KnowledgeGraphClient(
            base_url=settings.api_base_url,
            timeout_s=settings.http_timeout_s,
            transport=transport,
        )
        self.sequencer = RequestSequencer()
        self.feed = LogFeed(mode=settings.feed_mode, max_entries=settings.feed_max_entries, audit=self.audit)
        self.store = DashboardStore(feed=self.feed, sequencer=self.sequencer, audit=self.audit)
        self.pipeline = LogPipeline.from_settings(settings)
        self._unsubscribe_pipeline = self.feed.subscribe(self.pipeline.on_feed_update)
        self.graph = GraphController(
            canvas=Canvas(width=settings.canvas_width, height=settings.canvas_height),
            rng=rng,
            audit=self.audit,
        )
        self.preferences = PreferencesStore(settings.ui_state_path)

        self._refresh_lock = threading.Lock()
        self.refresh_poller = DashboardRefreshPoller(
            self.refresh,
            interval_s=settings.refresh_interval_s,
            max_backoff_s=settings.max_backoff_s,
            audit=self.audit,
        )
        self.live_poller = LiveFeedPoller(
            self.poll_live,
            interval_s=settings.live_interval_s,
            max_backoff_s=settings.max_backoff_s,
            audit=self.audit,
        )

    # --- cycles ---

    def refresh(self) -> DashboardSnapshot:
        """
        One full refresh cycle. Never raises for upstream trouble.
        """
        corr = self.audit.new_correlation_id()
        snapshot = fetch_snapshot(
            self.client,
            tickets=self.sequencer.next,
            log_limit=self.settings.log_limit,
            audit=self.audit,
            correlation_id=corr,
        )
        with self._refresh_lock:
            changed = self.store.apply_snapshot(snapshot)
            if "entities" in changed or "relations" in changed:
                self.graph.set_data(self.store.entities, self.store.relations)
        event = "refresh.failed" if len(snapshot.failed) == len(SLICES) else "refresh.cycle"
        self.audit.write(corr, event, {"changed": changed, "failed": snapshot.failed})
        return snapshot

    def poll_live(self) -> SliceResult[List[LogEntry]]:
        result = fetch_logs_slice(
            self.client,
            ticket=self.sequencer.next(),
            limit=self.settings.live_log_limit,
            audit=self.audit,
            correlation_id="live",
        )
        self.store.apply_logs(result)
        return result

    def refresh_service(self, service_id: str) -> bool:
        try:
            accepted = self.client.refresh_service(service_id)
        except httpx.HTTPError as e:
            self.audit.write("service", "upstream.fetch_failed", {"resource": f"health/{service_id}", "error": f"{type(e).__name__}: {e}"})
            return False
        if accepted:
            self.refresh()
        return accepted

    # --- live mode ---

    def set_live(self, enabled: bool) -> bool:
        self.pipeline.live = bool(enabled)
        if enabled:
            self.live_poller.start()
        else:
            self.live_poller.stop()
        return self.pipeline.live

    # --- derived ---

    def health_cards(self) -> HealthCards:
        return derive_service_health(
            self.store.health,
            available=self.store.health_available,
            api_base_url=self.settings.api_base_url,
        )

    def overview(self) -> OverviewStats:
        return summarize_overview(
            self.store.logs,
            self.health_cards().services,
            self.store.stats,
            entity_count=len(self.store.entities),
            relation_count=len(self.store.relations),
        )

    # --- lifecycle ---

    def start(self) -> None:
        if self.settings.refresh_poller_enabled:
            self.refresh_poller.start()

    def shutdown(self) -> None:
        self.live_poller.stop()
        self.refresh_poller.stop()
        self.pipeline.live = False
        self._unsubscribe_pipeline()
