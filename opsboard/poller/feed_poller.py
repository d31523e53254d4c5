from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from opsboard.models import LogEntry
from opsboard.telemetry.audit import AuditLogger
from opsboard.upstream.snapshot import SLICES, DashboardSnapshot, SliceResult


class UpstreamUnavailable(RuntimeError):
    pass


@dataclass(frozen=True)
class PollerConfig:
    name: str
    interval_s: float
    max_backoff_s: float = 60.0
    # Fire once right away instead of waiting a full interval first.
    run_immediately: bool = True
    # Same error signature is written at most once per window.
    error_dedupe_s: float = 60.0


class PeriodicPoller:
    """
    Repeating timer on a daemon thread. `tick` is called every `interval_s`; when it raises, the
    cycle is skipped and the wait grows by 1.8x up to `max_backoff_s`, back to normal on the next
    success. stop() cancels the timer and waits for an in-flight tick to finish.
    """

    def __init__(self, cfg: PollerConfig, tick: Callable[[], Any], *, audit: AuditLogger) -> None:
        self.cfg = cfg
        self._tick = tick
        self._audit = audit
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

        self._backoff_s: float = max(0.01, float(cfg.interval_s))
        self._last_error_sig: str | None = None
        self._last_error_ts: float = 0.0
        self.cycles = 0
        self.failures = 0

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    @property
    def backoff_s(self) -> float:
        return self._backoff_s

    def start(self) -> None:
        if self.is_running:
            return
        # Fresh event per run: a thread that outlived a timed-out stop() keeps its own, already set.
        self._stop = threading.Event()
        self._backoff_s = max(0.01, float(self.cfg.interval_s))
        self._thread = threading.Thread(
            target=self._run, args=(self._stop,), name=f"opsboard-{self.cfg.name}-poller", daemon=True
        )
        self._thread.start()

    def stop(self, *, timeout_s: float = 5.0) -> None:
        self._stop.set()
        t = self._thread
        if t and t.is_alive() and t is not threading.current_thread():
            t.join(timeout=timeout_s)
        self._thread = None

    def run_once(self) -> bool:
        """
        One cycle, including backoff bookkeeping. Returns True on success.
        """
        self.cycles += 1
        try:
            self._tick()
        except Exception as e:  # noqa: BLE001
            self.failures += 1
            self._on_error(e)
            return False
        self._backoff_s = max(0.01, float(self.cfg.interval_s))
        return True

    def _on_error(self, e: Exception) -> None:
        corr = self.cfg.name
        err_sig = f"{type(e).__name__}: {e}"
        now_s = time.monotonic()
        if (self._last_error_sig != err_sig) or (now_s - self._last_error_ts > self.cfg.error_dedupe_s):
            self._audit.write(corr, "poller.error", {"poller": self.cfg.name, "error": err_sig, "backoff_s": round(self._backoff_s, 2)})
            self._last_error_sig = err_sig
            self._last_error_ts = now_s
        prev = self._backoff_s
        self._backoff_s = min(float(self.cfg.max_backoff_s), max(self._backoff_s * 1.8, float(self.cfg.interval_s)))
        if abs(self._backoff_s - prev) >= 1.0:
            self._audit.write(corr, "poller.backoff", {"poller": self.cfg.name, "backoff_s": round(self._backoff_s, 2), "reason": type(e).__name__})

    def _run(self, stop: threading.Event) -> None:
        self._audit.write(self.cfg.name, "poller.started", {"poller": self.cfg.name, "interval_s": float(self.cfg.interval_s)})
        if not self.cfg.run_immediately:
            stop.wait(float(self._backoff_s))
        while not stop.is_set():
            self.run_once()
            stop.wait(float(self._backoff_s))
        self._audit.write(self.cfg.name, "poller.stopped", {"poller": self.cfg.name, "cycles": self.cycles, "failures": self.failures})


class DashboardRefreshPoller(PeriodicPoller):
    """
    The overall dashboard refresh: every slice, every `interval_s`.
    A cycle counts as failed only when no slice at all could be fetched.
    """

    def __init__(
        self,
        refresh: Callable[[], DashboardSnapshot],
        *,
        interval_s: float = 30.0,
        max_backoff_s: float = 60.0,
        audit: AuditLogger,
    ) -> None:
        self._refresh = refresh
        super().__init__(
            PollerConfig(name="refresh", interval_s=interval_s, max_backoff_s=max_backoff_s, run_immediately=True),
            self._cycle,
            audit=audit,
        )

    def _cycle(self) -> None:
        snapshot = self._refresh()
        failed: List[str] = snapshot.failed
        if len(failed) == len(SLICES):
            raise UpstreamUnavailable(f"all upstream fetches failed: {snapshot.logs.error or snapshot.health.error}")


class LiveFeedPoller(PeriodicPoller):
    """
    Live mode: re-fetch the log stream every `interval_s` and publish it to the feed.
    Started when live mode is switched on, stopped when it is switched off or on teardown.
    """

    def __init__(
        self,
        poll: Callable[[], SliceResult[List[LogEntry]]],
        *,
        interval_s: float = 3.0,
        max_backoff_s: float = 60.0,
        audit: AuditLogger,
    ) -> None:
        self._poll = poll
        super().__init__(
            PollerConfig(name="live", interval_s=interval_s, max_backoff_s=max_backoff_s, run_immediately=False),
            self._cycle,
            audit=audit,
        )

    def _cycle(self) -> Optional[SliceResult[List[LogEntry]]]:
        result = self._poll()
        if not result.ok:
            raise UpstreamUnavailable(f"live log fetch failed: {result.error}")
        return result
