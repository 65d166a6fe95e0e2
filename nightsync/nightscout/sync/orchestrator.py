"""Sync orchestration: settings changes → credential check → upload.

The orchestrator subscribes to the settings store and reacts to edits of
the Nightscout URL, API key and enabled flag:

    url / apiKey changed  → verify credentials, report the result to the
                            presentation sink, upload on success
    enabled → True        → verify credentials silently, upload on success

A change is only acted on when the debouncer accepts it (200 ms window per
key) and the URL, API key and primary role are set.  ``synchronize()`` is
the independent periodic / manual entry point; it uploads directly without
re-verifying credentials.

All state changes happen on the event loop that owns the orchestrator.
Network calls run in tasks created on that loop.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable

from nightsync.nightscout.base import UploadResult, VerificationResult
from nightsync.nightscout.settings_store import SettingKey, SettingsStore
from nightsync.nightscout.sync.debounce import ChangeDebouncer
from nightsync.nightscout.sync.uploader import EntryUploader
from nightsync.nightscout.sync.verifier import CredentialVerifier

logger = logging.getLogger("nightsync.nightscout.sync.orchestrator")

DEBOUNCE_INTERVAL_MS = 200

VERIFICATION_SUCCESS_TITLE = "Nightscout verification successful"
VERIFICATION_SUCCESS_MESSAGE = "Your Nightscout site was verified successfully."
VERIFICATION_FAILURE_TITLE = "Nightscout verification failed"
UNKNOWN_ERROR_MESSAGE = "unknown error"

PresentationSink = Callable[[str, str], None]


class SyncState(str, Enum):
    IDLE = "idle"
    VERIFYING = "verifying"
    SYNCING = "syncing"


def verification_message(result: VerificationResult) -> tuple[str, str]:
    """Return the (title, message) pair shown for a verification result."""
    if result.success:
        return VERIFICATION_SUCCESS_TITLE, VERIFICATION_SUCCESS_MESSAGE
    return VERIFICATION_FAILURE_TITLE, result.failure_detail or UNKNOWN_ERROR_MESSAGE


class SyncOrchestrator:
    """Own the verify-then-sync workflow for one Nightscout configuration.

    The debounce record and the state field are owned by this instance and
    only mutated on its event loop.  The watermark is written by the
    uploader alone.

    Usage::

        orchestrator = SyncOrchestrator(store, uploader, presenter=show_alert)
        orchestrator.start()            # subscribe to settings changes
        await orchestrator.synchronize()
        ...
        await orchestrator.stop()
    """

    def __init__(
        self,
        store: SettingsStore,
        uploader: EntryUploader,
        verifier: CredentialVerifier | None = None,
        presenter: PresentationSink | None = None,
        debouncer: ChangeDebouncer | None = None,
        debounce_interval_ms: int = DEBOUNCE_INTERVAL_MS,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store:                Settings store to read and observe.
            uploader:             Uploader invoked after a successful check.
            verifier:             Credential verifier (default: new instance).
            presenter:            Sink receiving (title, message) for checks
                                  triggered by URL / API key edits.
            debouncer:            Change debouncer (default: new instance).
            debounce_interval_ms: Minimum spacing of accepted events per key.
            loop:                 Loop that owns the orchestrator. Defaults to
                                  the running loop at ``start()``.
        """
        self._store = store
        self._uploader = uploader
        self._verifier = verifier or CredentialVerifier()
        self._presenter = presenter
        self._debouncer = debouncer or ChangeDebouncer()
        self._debounce_interval_ms = debounce_interval_ms
        self._loop = loop
        self._state = SyncState.IDLE
        self._generation = 0
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Subscribe to settings changes.  Idempotent."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self.on_setting_changed)
            logger.debug("Orchestrator subscribed to settings changes")

    async def stop(self) -> None:
        """Unsubscribe and wait for in-flight verify/sync tasks."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.wait_idle()

    async def wait_idle(self) -> None:
        """Wait until every dispatched verify/sync task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def state(self) -> SyncState:
        return self._state

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def synchronize(self) -> UploadResult | None:
        """Upload pending readings if upload is fully configured.

        Not gated by the verification state machine.

        Returns:
            The upload result, or None when upload is not configured.
        """
        snapshot = self._store.snapshot()
        if not snapshot.is_configured:
            logger.debug(
                "Synchronize skipped (enabled=%s, primary=%s, credentials=%s)",
                snapshot.enabled,
                snapshot.primary_role,
                bool(snapshot.endpoint_url and snapshot.api_key),
            )
            return None
        return await self._uploader.upload()

    def on_setting_changed(self, key: SettingKey | str, value: Any) -> None:
        """Settings observer callback.

        Safe to call from any thread: calls from outside the owning loop are
        re-entered onto it.
        """
        loop = self._loop
        if loop is not None and not loop.is_closed():
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is not loop:
                loop.call_soon_threadsafe(self.handle_change, key, value)
                return
        self.handle_change(key, value)

    def handle_change(
        self, key: SettingKey | str, value: Any
    ) -> asyncio.Task | None:
        """React to one settings change on the owning loop.

        Returns:
            The dispatched verify-then-sync task, or None if the change was
            ignored.
        """
        try:
            key = SettingKey(key)
        except ValueError:
            return None

        if key in (SettingKey.URL, SettingKey.API_KEY):
            if not self._debouncer.accept(key.value, self._debounce_interval_ms):
                return None
            if not self._store.snapshot().has_credentials:
                return None
            return self._dispatch(present_result=True)

        if key is SettingKey.ENABLED:
            if not self._debouncer.accept(key.value, self._debounce_interval_ms):
                return None
            if not value:
                return None
            if not self._store.snapshot().has_credentials:
                return None
            return self._dispatch(present_result=False)

        return None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _dispatch(self, present_result: bool) -> asyncio.Task | None:
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning("No event loop for credential check, change ignored")
                return None
        self._generation += 1
        self._state = SyncState.VERIFYING
        task = loop.create_task(self._verify_then_sync(self._generation, present_result))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _set_state(self, generation: int, state: SyncState) -> None:
        # Only the most recently dispatched sequence drives the state.
        if generation == self._generation:
            self._state = state

    async def _verify_then_sync(self, generation: int, present_result: bool) -> None:
        snapshot = self._store.snapshot()
        self._set_state(generation, SyncState.VERIFYING)
        try:
            # Settings may have changed between dispatch and now.
            if not snapshot.has_credentials:
                logger.debug("Credentials cleared before check, sequence dropped")
                return

            result = await self._verifier.verify(snapshot.endpoint_url, snapshot.api_key)

            if result.malformed:
                logger.error(
                    "Nightscout credential check got a malformed response: %s",
                    result.failure_detail,
                )
                return

            if present_result:
                self._present(result)

            if not result.success:
                logger.info("Nightscout credential check failed: %s", result.failure_detail)
                return

            self._set_state(generation, SyncState.SYNCING)
            await self.synchronize()
        except Exception:
            logger.exception("Verify-then-sync sequence failed")
        finally:
            self._set_state(generation, SyncState.IDLE)

    def _present(self, result: VerificationResult) -> None:
        if self._presenter is None:
            return
        title, message = verification_message(result)
        self._presenter(title, message)
