from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from opsboard.state.preferences import PreferencesStore, UiPreferences


def test_defaults_when_file_missing(tmp_path) -> None:
    store = PreferencesStore(str(tmp_path / "ui_state.json"))
    assert store.current == UiPreferences(theme="system", active_view="overview")
    assert not (tmp_path / "ui_state.json").exists()


def test_corrupt_file_yields_defaults(tmp_path) -> None:
    p = tmp_path / "ui_state.json"
    p.write_text("{not json", encoding="utf-8")
    assert PreferencesStore(str(p)).current == UiPreferences()
    p.write_text(json.dumps({"theme": "neon"}), encoding="utf-8")
    assert PreferencesStore(str(p)).current == UiPreferences()


def test_changes_are_saved_and_reloaded(tmp_path) -> None:
    p = tmp_path / "nested" / "ui_state.json"
    store = PreferencesStore(str(p))
    store.set_theme("dark")
    store.set_active_view("logs")
    assert json.loads(p.read_text(encoding="utf-8")) == {"theme": "dark", "active_view": "logs"}
    reloaded = PreferencesStore(str(p))
    assert reloaded.current.theme == "dark"
    assert reloaded.current.active_view == "logs"


def test_unchanged_update_does_not_write(tmp_path) -> None:
    p = tmp_path / "ui_state.json"
    store = PreferencesStore(str(p))
    store.update(theme="system")
    assert not p.exists()


def test_theme_cycles_light_dark_system(tmp_path) -> None:
    store = PreferencesStore(str(tmp_path / "ui_state.json"))
    store.set_theme("light")
    seen = [store.cycle_theme().theme for _ in range(3)]
    assert seen == ["dark", "system", "light"]


def test_invalid_value_rejected_and_state_kept(tmp_path) -> None:
    store = PreferencesStore(str(tmp_path / "ui_state.json"))
    store.set_active_view("graph")
    with pytest.raises(ValidationError):
        store.set_active_view("settings")  # type: ignore[arg-type]
    assert store.current.active_view == "graph"
