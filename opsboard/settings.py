from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="OPSBOARD_", extra="ignore")

    # Upstream knowledge-graph / logging backend (entities, relations, logs, stats, health).
    api_base_url: str = "http://localhost:42003"
    http_timeout_s: float = 10.0

    # Two independent repeating timers:
    # - the overall dashboard refresh (entities, relations, logs, stats, health)
    # - the live log feed (logs only, larger limit)
    refresh_interval_s: float = 30.0
    live_interval_s: float = 3.0
    refresh_poller_enabled: bool = True
    # Upper bound for exponential backoff when the upstream keeps failing.
    max_backoff_s: float = 60.0

    log_limit: int = 100
    live_log_limit: int = 200

    # Log display window (incrementally grown while the consumer scrolls).
    display_initial: int = 100
    display_increment: int = 50
    scroll_threshold_px: int = 50

    # A service counts as active if it logged within this trailing window.
    active_window_minutes: int = 10

    # Live feed transport:
    # - replace: every live batch supersedes the canonical set wholesale
    # - append: only unseen ids are merged in (capped at feed_max_entries)
    feed_mode: str = "replace"  # replace|append
    feed_max_entries: int = 500

    # Canvas bounds for the random layout fallback.
    canvas_width: float = 800.0
    canvas_height: float = 600.0

    audit_log_path: str = "var/audit/opsboard_audit.jsonl"
    # Persisted UI preferences (theme, active view). Mount `var/` to keep them across restarts.
    ui_state_path: str = "var/config/ui_state.json"
