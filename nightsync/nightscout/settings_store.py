"""Key-value settings store with change notification.

The store holds the Nightscout endpoint, API key, enabled / primary-role
flags and the upload watermark.  Every ``set()`` notifies subscribers with
``(key, value)``; the sync orchestrator subscribes to react to credential
edits.

Two implementations are provided:

    InMemorySettingsStore - process-local, for tests and embedding
    YamlSettingsStore     - persisted to a YAML file, survives restarts

Usage::

    store = YamlSettingsStore(Path("~/.nightsync/settings.yaml").expanduser())
    unsubscribe = store.subscribe(lambda key, value: print(key, value))
    store.set(SettingKey.URL, "https://my.nightscout.example")
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from nightsync.nightscout.base import as_utc
from nightsync.nightscout.exceptions import SettingsStoreError

logger = logging.getLogger("nightsync.nightscout.settings")

SettingsObserver = Callable[["SettingKey", Any], None]


class SettingKey(str, Enum):
    """Recognised setting keys."""

    ENABLED = "enabled"
    URL = "url"
    API_KEY = "apiKey"
    WATERMARK = "watermarkTimestamp"
    PRIMARY_ROLE = "primaryRole"


@dataclass(frozen=True)
class ConfigurationSnapshot:
    """Point-in-time view of the upload configuration.

    Attributes:
        enabled:      Upload switched on by the user.
        endpoint_url: Nightscout site URL.
        api_key:      Nightscout API secret (plain text; hashed on the wire).
        primary_role: This process is the authoritative uploader.
    """

    enabled: bool = False
    endpoint_url: str | None = None
    api_key: str | None = None
    primary_role: bool = False

    @property
    def has_credentials(self) -> bool:
        """True when a credential probe can be made."""
        return bool(self.endpoint_url and self.api_key and self.primary_role)

    @property
    def is_configured(self) -> bool:
        """True when synchronization may run."""
        return self.enabled and self.has_credentials


def _blank_to_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class SettingsStore(ABC):
    """Abstract key-value store with observer support.

    Subclasses implement ``_read`` / ``_write``; notification, snapshot
    building and watermark coercion are shared.
    """

    def __init__(self) -> None:
        self._observers: list[SettingsObserver] = []
        self._observers_lock = threading.Lock()

    @abstractmethod
    def _read(self, key: SettingKey) -> Any:
        """Return the stored value for ``key`` or None."""

    @abstractmethod
    def _write(self, key: SettingKey, value: Any) -> None:
        """Persist ``value`` under ``key``."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: SettingKey | str) -> Any:
        return self._read(SettingKey(key))

    def set(self, key: SettingKey | str, value: Any) -> None:
        """Store ``value`` and notify every subscriber."""
        key = SettingKey(key)
        self._write(key, value)
        with self._observers_lock:
            observers = list(self._observers)
        for observer in observers:
            observer(key, value)

    def subscribe(self, observer: SettingsObserver) -> Callable[[], None]:
        """Register ``observer`` for change notifications.

        Returns:
            A callable that removes the subscription.
        """
        with self._observers_lock:
            self._observers.append(observer)

        def _unsubscribe() -> None:
            with self._observers_lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe

    def snapshot(self) -> ConfigurationSnapshot:
        return ConfigurationSnapshot(
            enabled=bool(self._read(SettingKey.ENABLED)),
            endpoint_url=_blank_to_none(self._read(SettingKey.URL)),
            api_key=_blank_to_none(self._read(SettingKey.API_KEY)),
            primary_role=bool(self._read(SettingKey.PRIMARY_ROLE)),
        )

    @property
    def watermark(self) -> datetime | None:
        """Timestamp of the newest reading confirmed by the collector."""
        raw = self._read(SettingKey.WATERMARK)
        if raw is None:
            return None
        if isinstance(raw, datetime):
            return as_utc(raw)
        try:
            return as_utc(datetime.fromisoformat(str(raw).replace("Z", "+00:00")))
        except ValueError as exc:
            raise SettingsStoreError(f"Invalid watermark value: {raw!r}") from exc

    @watermark.setter
    def watermark(self, value: datetime) -> None:
        self.set(SettingKey.WATERMARK, as_utc(value))


class InMemorySettingsStore(SettingsStore):
    """Dict-backed settings store."""

    def __init__(self, initial: dict[SettingKey | str, Any] | None = None) -> None:
        super().__init__()
        self._values: dict[SettingKey, Any] = {
            SettingKey(k): v for k, v in (initial or {}).items()
        }

    def _read(self, key: SettingKey) -> Any:
        return self._values.get(key)

    def _write(self, key: SettingKey, value: Any) -> None:
        self._values[key] = value


class YamlSettingsStore(SettingsStore):
    """Settings persisted to a YAML mapping on disk.

    The file is loaded once at construction and rewritten on every
    ``set()``.  Writes go to a temporary file in the same directory that is
    then renamed over the target, so a crash never leaves a truncated file.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = Path(path)
        self._lock = threading.Lock()
        self._values = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[SettingKey, Any]:
        import yaml

        if not self._path.exists():
            logger.info("Settings file %s not found, starting empty", self._path)
            return {}

        with self._path.open("r", encoding="utf-8") as fh:
            try:
                raw = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise SettingsStoreError(
                    f"YAML parse error in {self._path}: {exc}"
                ) from exc

        if not isinstance(raw, dict):
            raise SettingsStoreError(
                f"{self._path} must contain a mapping, got {type(raw).__name__}"
            )

        values: dict[SettingKey, Any] = {}
        for key, value in raw.items():
            try:
                values[SettingKey(key)] = value
            except ValueError:
                logger.warning("Ignoring unknown setting %r in %s", key, self._path)
        return values

    def _read(self, key: SettingKey) -> Any:
        with self._lock:
            return self._values.get(key)

    def _write(self, key: SettingKey, value: Any) -> None:
        import yaml

        if isinstance(value, datetime):
            value = as_utc(value).isoformat()

        with self._lock:
            self._values[key] = value
            document = {k.value: v for k, v in self._values.items()}
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    yaml.safe_dump(document, fh, sort_keys=True)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
