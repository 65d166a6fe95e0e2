"""Error types raised by the Nightscout client and upload pipeline.

These never cross the asynchronous boundary of a verify or upload task:
the verifier and the uploader catch them and report a result instead.
"""

from __future__ import annotations


class NightsyncError(Exception):
    """Base class for all Nightsync errors."""


class TransportError(NightsyncError):
    """The request never produced an HTTP response (DNS, connect, timeout...)."""


class HTTPStatusError(NightsyncError):
    """The collector answered with a status code that signals failure.

    Attributes:
        status_code: HTTP status returned by the collector.
        body:        Decoded response body, or None when empty.
    """

    def __init__(self, status_code: int, body: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(body or f"HTTP status {status_code}")


class MalformedResponseError(NightsyncError):
    """No transport error, but the response cannot be read as an HTTP response."""


class SerializationError(NightsyncError):
    """The outgoing document could not be encoded."""


class NotConfigured(NightsyncError):
    """Upload or verification was requested without a usable configuration."""


class SettingsStoreError(NightsyncError, ValueError):
    """Raised when the persisted settings file is unreadable or invalid."""
