"""Persist the link state across application restarts with ``QSettings``."""
from __future__ import annotations

from typing import Optional

from PySide6 import QtCore

ORGANIZATION = "thermal-site-viewer"
APPLICATION = "viewer"
GROUP = "location"


class SettingsStateStore:
    def __init__(self, settings: Optional[QtCore.QSettings] = None) -> None:
        self._settings = settings if settings is not None else QtCore.QSettings(ORGANIZATION, APPLICATION)

    @classmethod
    def at_path(cls, path: str) -> "SettingsStateStore":
        return cls(QtCore.QSettings(path, QtCore.QSettings.Format.IniFormat))

    def get(self, key: str) -> Optional[str]:
        value = self._settings.value(f"{GROUP}/{key}")
        if value is None:
            return None
        return str(value)

    def set(self, key: str, value: str) -> None:
        self._settings.setValue(f"{GROUP}/{key}", str(value))

    def delete(self, key: str) -> None:
        self._settings.remove(f"{GROUP}/{key}")

    def sync(self) -> None:
        self._settings.sync()
