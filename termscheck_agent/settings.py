"""
User settings: a small persisted key-value store with change subscribers.

Keys are stored the way the extension stores them (``autoAnalyze``,
``showNotifications``, ``credential``).
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

# key -> (old value, new value)
SettingsChanges = dict[str, tuple[Any, Any]]
SettingsListener = Callable[[SettingsChanges], None]


class UserSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    auto_analyze: bool = Field(True, alias="autoAnalyze")
    show_notifications: bool = Field(True, alias="showNotifications")
    credential: str | None = None


class SettingsStore:
    def __init__(self, path: str | Path | None = None, *, credential: str | None = None):
        self._path = Path(path) if path else None
        self._settings = self._load()
        if self._settings.credential is None and credential:
            self._settings = self._settings.model_copy(update={"credential": credential})
        self._listeners: list[SettingsListener] = []

    def _load(self) -> UserSettings:
        if self._path is None or not self._path.exists():
            return UserSettings()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return UserSettings.model_validate(raw)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", self._path, e)
            return UserSettings()

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = self._settings.model_dump(by_alias=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    @property
    def current(self) -> UserSettings:
        return self._settings

    @property
    def auto_analyze(self) -> bool:
        return self._settings.auto_analyze

    @property
    def show_notifications(self) -> bool:
        return self._settings.show_notifications

    @property
    def credential(self) -> str | None:
        return self._settings.credential

    def subscribe(self, listener: SettingsListener) -> None:
        self._listeners.append(listener)

    def update(self, **values: Any) -> SettingsChanges:
        """Apply new values; listeners only hear about keys whose value changed."""
        if "credential" in values and values["credential"] is not None:
            values["credential"] = values["credential"].strip() or None

        changes: SettingsChanges = {}
        for key, new in values.items():
            if key not in UserSettings.model_fields:
                raise KeyError(f"Unknown setting: {key}")
            old = getattr(self._settings, key)
            if old != new:
                changes[key] = (old, new)
        if not changes:
            return changes

        self._settings = self._settings.model_copy(update={k: v for k, (_, v) in changes.items()})
        self._save()
        for listener in list(self._listeners):
            listener(changes)
        return changes
