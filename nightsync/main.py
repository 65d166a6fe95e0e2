"""Nightsync service entry point.

Run locally:
    python -m nightsync.main

The ``nightsync`` console script runs the sync loop against an empty
in-memory reading source, so on its own it verifies credentials but never
uploads anything.  Hosts that record readings embed the service and pass
their own ``ReadingSource``::

    await run_service(MyDatabaseReadingSource(...))
"""

from __future__ import annotations

import asyncio
import logging
import sys

from nightsync.config import Settings, get_settings
from nightsync.nightscout.base import InMemoryReadingSource, ReadingSource
from nightsync.nightscout.settings_store import (
    SettingKey,
    SettingsStore,
    YamlSettingsStore,
)
from nightsync.nightscout.sync.debounce import ChangeDebouncer
from nightsync.nightscout.sync.orchestrator import PresentationSink, SyncOrchestrator
from nightsync.nightscout.sync.scheduler import PeriodicSync
from nightsync.nightscout.sync.uploader import EntryUploader
from nightsync.nightscout.sync.verifier import CredentialVerifier

logger = logging.getLogger("nightsync")


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def seed_store(store: SettingsStore, settings: Settings) -> None:
    """Copy seed values from the environment into unset store keys."""
    seeds = {
        SettingKey.URL: settings.nightscout_url,
        SettingKey.API_KEY: settings.nightscout_api_key,
        SettingKey.ENABLED: settings.nightscout_enabled,
        SettingKey.PRIMARY_ROLE: settings.primary_role,
    }
    for key, value in seeds.items():
        if value is not None and store.get(key) is None:
            store.set(key, value)
            logger.info("Seeded setting %s from environment", key.value)


def log_presenter(title: str, message: str) -> None:
    logger.info("%s: %s", title, message)


def build_orchestrator(
    source: ReadingSource,
    store: SettingsStore,
    settings: Settings,
    presenter: PresentationSink | None = log_presenter,
) -> SyncOrchestrator:
    """Wire uploader, verifier and debouncer into an orchestrator."""
    uploader = EntryUploader(
        source,
        store,
        max_count=settings.max_upload_count,
        timeout=settings.http_timeout_seconds,
    )
    return SyncOrchestrator(
        store,
        uploader,
        verifier=CredentialVerifier(timeout=settings.http_timeout_seconds),
        presenter=presenter,
        debouncer=ChangeDebouncer(),
        debounce_interval_ms=settings.debounce_interval_ms,
    )


async def run_service(
    source: ReadingSource, settings: Settings | None = None
) -> None:
    """Run the orchestrator and periodic sync until cancelled."""
    settings = settings or get_settings()
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)

    store = YamlSettingsStore(settings.settings_path)
    seed_store(store, settings)

    orchestrator = build_orchestrator(source, store, settings)
    orchestrator.start()
    periodic = PeriodicSync(orchestrator, interval_seconds=settings.sync_interval_seconds)
    try:
        await periodic.run()
    finally:
        periodic.stop()
        await orchestrator.stop()
        logger.info("%s stopped", settings.app_name)


def main() -> None:
    settings = get_settings()
    configure_logging(settings)
    logger.warning(
        "No reading source configured, running with an empty in-memory source"
    )
    try:
        asyncio.run(run_service(InMemoryReadingSource(), settings))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
