from __future__ import annotations

import json
import os
import threading
from typing import Literal

from pydantic import BaseModel, ValidationError


Theme = Literal["light", "dark", "system"]
ActiveView = Literal["overview", "services", "graph", "logs"]

_THEME_CYCLE = {"light": "dark", "dark": "system", "system": "light"}


class UiPreferences(BaseModel):
    theme: Theme = "system"
    active_view: ActiveView = "overview"


class PreferencesStore:
    """
    Explicit home of persisted UI state: loaded once when constructed, written back on every change.
    A missing or unreadable file yields defaults.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        self._prefs = self._load()

    def _load(self) -> UiPreferences:
        if not os.path.exists(self.path):
            return UiPreferences()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return UiPreferences.model_validate(json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError):
            return UiPreferences()

    def _save(self) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp = self.path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self._prefs.model_dump(), f, indent=2)
        os.replace(tmp, self.path)

    @property
    def current(self) -> UiPreferences:
        return self._prefs

    def update(self, **changes: object) -> UiPreferences:
        with self._lock:
            # Validate the merged result, not the fragments.
            prefs = UiPreferences.model_validate({**self._prefs.model_dump(), **changes})
            if prefs != self._prefs:
                self._prefs = prefs
                self._save()
            return self._prefs

    def set_theme(self, theme: Theme) -> UiPreferences:
        return self.update(theme=theme)

    def set_active_view(self, view: ActiveView) -> UiPreferences:
        return self.update(active_view=view)

    def cycle_theme(self) -> UiPreferences:
        return self.update(theme=_THEME_CYCLE[self._prefs.theme])
