"""Core value types and the reading-source boundary.

``Reading`` is produced by the local data store and is only read and
serialized here.  ``ReadingSource`` is the interface the uploader pulls
pending readings through; the store behind it lives outside this package.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone

logger = logging.getLogger("nightsync.nightscout")


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Readings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Reading:
    """One recorded glucose reading.

    Attributes:
        timestamp:      When the reading was taken (UTC).
        value_mgdl:     Calculated glucose value in mg/dL.
        direction:      Trend arrow name (e.g. 'Flat', 'FortyFiveUp').
        device:         Name of the recording device / app.
        reading_id:     Stable identifier, sent as the entry ``_id``.
        raw_value:      Unfiltered sensor signal. Never uploaded.
        filtered_value: Filtered sensor signal. Never uploaded.
    """

    timestamp: datetime
    value_mgdl: float
    direction: str | None = None
    device: str | None = None
    reading_id: str | None = None
    raw_value: float | None = None
    filtered_value: float | None = None


class ReadingSource(ABC):
    """Yields locally stored readings that have not been uploaded yet."""

    @abstractmethod
    async def latest_readings(
        self, limit: int, since: datetime | None = None
    ) -> list[Reading]:
        """Return readings strictly newer than ``since``, newest first.

        Args:
            limit: Maximum number of readings to return.
            since: Exclusive lower bound. None returns the newest ``limit``.

        Returns:
            At most ``limit`` readings ordered newest first.
        """


class InMemoryReadingSource(ReadingSource):
    """List-backed ``ReadingSource`` for embedding and tests."""

    def __init__(self, readings: list[Reading] | None = None) -> None:
        self._readings: list[Reading] = list(readings or [])

    def add(self, *readings: Reading) -> None:
        self._readings.extend(readings)

    async def latest_readings(
        self, limit: int, since: datetime | None = None
    ) -> list[Reading]:
        candidates = self._readings
        if since is not None:
            bound = as_utc(since)
            candidates = [r for r in candidates if as_utc(r.timestamp) > bound]
        ordered = sorted(candidates, key=lambda r: as_utc(r.timestamp), reverse=True)
        return ordered[: max(limit, 0)]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class VerificationResult:
    """Outcome of a single credential probe.

    Attributes:
        success:        True when the collector accepted the credentials.
        failure_detail: Transport error text, response body, or a generic
                        status message. None on success.
        malformed:      The collector answered without a usable status
                        code. Logged only, never shown to the user.
    """

    success: bool
    failure_detail: str | None = None
    malformed: bool = False


@dataclass
class UploadResult:
    """Outcome of a single ``upload()`` call.

    Attributes:
        status:            'success', 'skipped' (nothing pending or not
                           configured) or 'error'.
        readings_uploaded: Number of readings acknowledged by the collector.
        watermark:         Watermark after the call.
        error:             Error message if status == 'error'.
    """

    status: str = "success"
    readings_uploaded: int = 0
    watermark: datetime | None = None
    error: str | None = None
