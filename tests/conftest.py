from __future__ import annotations

import os

import pytest

from opsboard.settings import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Keep tests deterministic and isolated from developer machine env.
    """
    for k in list(os.environ.keys()):
        if k.startswith("OPSBOARD_"):
            monkeypatch.delenv(k, raising=False)


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        api_base_url="http://kg.test",
        audit_log_path=str(tmp_path / "audit" / "opsboard_audit.jsonl"),
        ui_state_path=str(tmp_path / "config" / "ui_state.json"),
        live_interval_s=0.05,
        refresh_interval_s=0.05,
        refresh_poller_enabled=False,
    )
