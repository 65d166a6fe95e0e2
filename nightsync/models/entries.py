"""Nightscout ``entries`` document schema.

One ``NightscoutEntry`` is produced per local reading.  Raw-signal fields
(unfiltered / filtered sensor counts) are not part of this schema and are
never sent.
"""

from __future__ import annotations

import json
from datetime import timezone
from typing import TYPE_CHECKING, Iterable

from pydantic import Field, ValidationError

from nightsync.models.base import NightsyncBase
from nightsync.nightscout.exceptions import SerializationError

if TYPE_CHECKING:
    from nightsync.nightscout.base import Reading


class NightscoutEntry(NightsyncBase):
    """A single sensor glucose value ("sgv") entry."""

    id: str | None = Field(default=None, alias="_id")
    device: str | None = None
    date: int = Field(ge=0, description="Epoch milliseconds")
    date_string: str = Field(alias="dateString")
    type: str = "sgv"
    sgv: int = Field(ge=0)
    direction: str | None = None
    noise: int = 1
    rssi: int = 100

    @classmethod
    def from_reading(cls, reading: "Reading") -> "NightscoutEntry":
        """Build the entry document for a reading.

        Naive timestamps are taken to be UTC.
        """
        ts = reading.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return cls(
            _id=reading.reading_id,
            device=reading.device,
            date=int(ts.timestamp() * 1000),
            dateString=ts.isoformat(),
            sgv=round(reading.value_mgdl),
            direction=reading.direction,
        )

    def to_document(self) -> dict:
        """Return the JSON-ready dict, using wire aliases and dropping nulls."""
        return self.model_dump(by_alias=True, exclude_none=True)


def entries_to_json(readings: Iterable["Reading"]) -> bytes:
    """Serialize readings into the JSON array body of an entries upload.

    Raises:
        SerializationError: If a reading cannot be represented (e.g. a NaN
            glucose value or an out-of-range timestamp).
    """
    try:
        documents = [NightscoutEntry.from_reading(r).to_document() for r in readings]
        return json.dumps(documents, allow_nan=False).encode("utf-8")
    except (ValidationError, ValueError, TypeError, OverflowError) as exc:
        raise SerializationError(f"Could not encode entries: {exc}") from exc
