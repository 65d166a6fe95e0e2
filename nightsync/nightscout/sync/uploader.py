"""Incremental upload of readings to the Nightscout entries endpoint.

Each ``upload()`` call:
1. Reads up to ``max_count`` readings newer than the watermark, newest first
2. Returns early (no request) when nothing is pending
3. Serializes the readings to a JSON array of entries
4. POSTs them once to ``/api/v1/entries``
5. On a 2xx response advances the watermark to the newest uploaded reading

Robustness guarantees:
- The watermark only moves after the collector acknowledged the upload
- The watermark never moves backwards
- Failed uploads leave the watermark untouched; the same window is
  offered again on the next call
- Readings recorded after the fetch in step 1 are left for the next call
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from nightsync.models.entries import entries_to_json
from nightsync.nightscout.base import ReadingSource, UploadResult, as_utc
from nightsync.nightscout.client import NightscoutClient, body_text
from nightsync.nightscout.exceptions import (
    HTTPStatusError,
    MalformedResponseError,
    NotConfigured,
    SerializationError,
    TransportError,
)
from nightsync.nightscout.settings_store import SettingsStore

logger = logging.getLogger("nightsync.nightscout.sync.uploader")

# 2016 readings = one week at one reading per five minutes
MAX_UPLOAD_COUNT = 2016


class EntryUploader:
    """Upload pending readings and advance the watermark on success.

    The uploader is the only writer of the watermark.  Calls to ``upload()``
    are serialized by an ``asyncio.Lock``, so overlapping calls never send
    the same unacknowledged window twice.
    """

    def __init__(
        self,
        source: ReadingSource,
        store: SettingsStore,
        http_client: httpx.AsyncClient | None = None,
        max_count: int = MAX_UPLOAD_COUNT,
        timeout: float | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            source:      Where pending readings come from.
            store:       Settings store holding credentials and the watermark.
            http_client: Optional pre-configured httpx client.
            max_count:   Upper bound on readings sent per call.
            timeout:     Request timeout in seconds (None = httpx default).
        """
        self._source = source
        self._store = store
        self._http_client = http_client
        self._max_count = max_count
        self._timeout = timeout
        self._lock = asyncio.Lock()

    async def upload(self) -> UploadResult:
        """Run one upload attempt.  Never raises Nightsync errors."""
        async with self._lock:
            try:
                return await self._upload()
            except NotConfigured as exc:
                logger.debug("Upload skipped: %s", exc)
                return UploadResult(status="skipped", watermark=self._store.watermark)

    async def _upload(self) -> UploadResult:
        snapshot = self._store.snapshot()
        if not snapshot.has_credentials:
            raise NotConfigured("Nightscout URL, API key or primary role missing")

        logger.info("Uploading readings to Nightscout %s", snapshot.endpoint_url)

        watermark = self._store.watermark
        readings = await self._source.latest_readings(self._max_count, since=watermark)
        if not readings:
            logger.info("No readings to upload")
            return UploadResult(status="skipped", watermark=watermark)

        logger.info("Number of readings to upload: %d", len(readings))

        try:
            body = entries_to_json(readings)
        except SerializationError as exc:
            logger.error("Failed to serialize readings: %s", exc)
            return UploadResult(status="error", watermark=watermark, error=str(exc))

        client = NightscoutClient(
            snapshot.endpoint_url,
            snapshot.api_key,
            http_client=self._http_client,
            timeout=self._timeout,
        )
        try:
            response = await client.post_entries(body)
        except TransportError as exc:
            logger.error("Failed to upload, error = %s", exc)
            return UploadResult(status="error", watermark=watermark, error=str(exc))
        except HTTPStatusError as exc:
            logger.error("Failed to upload, status code = %d", exc.status_code)
            return UploadResult(status="error", watermark=watermark, error=str(exc))
        except MalformedResponseError as exc:
            logger.error("Failed to upload, %s", exc)
            return UploadResult(status="error", watermark=watermark, error=str(exc))

        newest = max(as_utc(r.timestamp) for r in readings)
        if watermark is None or newest > watermark:
            logger.info("Upload succeeded, setting watermark to %s", newest.isoformat())
            self._store.watermark = newest
            watermark = newest

        if body_text(response) is None:
            logger.info("Empty response received")

        return UploadResult(
            status="success", readings_uploaded=len(readings), watermark=watermark
        )
