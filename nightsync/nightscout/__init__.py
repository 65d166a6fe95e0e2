"""Nightscout upload engine.

This package synchronizes locally recorded glucose readings to a
Nightscout site, tracking a persisted watermark so each reading is sent
once, and re-verifies credentials whenever the user edits them.

Subpackages:
    sync/  - Debouncer, credential verifier, uploader, orchestrator, scheduler

Core modules:
    base           - Reading, ReadingSource ABC and result types
    client         - Nightscout REST client (hashed api-secret auth)
    settings_store - Observable key-value settings (in-memory / YAML)
    exceptions     - Error hierarchy
"""

from nightsync.nightscout.base import (
    InMemoryReadingSource,
    Reading,
    ReadingSource,
    UploadResult,
    VerificationResult,
)
from nightsync.nightscout.settings_store import (
    ConfigurationSnapshot,
    InMemorySettingsStore,
    SettingKey,
    SettingsStore,
    YamlSettingsStore,
)

__all__ = [
    "Reading",
    "ReadingSource",
    "InMemoryReadingSource",
    "UploadResult",
    "VerificationResult",
    "ConfigurationSnapshot",
    "SettingKey",
    "SettingsStore",
    "InMemorySettingsStore",
    "YamlSettingsStore",
]
