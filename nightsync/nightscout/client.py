"""Nightscout REST API client.

Authentication uses the ``api-secret`` header, whose value is the SHA-1
hex digest of the site's API secret.  The plain secret never leaves the
process.

Endpoints used:
    /api/v1/entries           - Upload sensor glucose entries (POST)
    /api/v1/experiments/test  - Authenticated no-op probe (GET)
"""

from __future__ import annotations

import hashlib
import logging

import httpx

from nightsync.nightscout.exceptions import (
    HTTPStatusError,
    MalformedResponseError,
    TransportError,
)

logger = logging.getLogger("nightsync.nightscout.client")

ENTRIES_PATH = "/api/v1/entries"
AUTH_TEST_PATH = "/api/v1/experiments/test"


def hash_api_secret(api_key: str) -> str:
    """Return the value sent in the ``api-secret`` header."""
    return hashlib.sha1(api_key.encode("utf-8")).hexdigest()


def build_url(site_url: str, path: str) -> str:
    """Append an API path to the site URL, keeping any sub-path of the site."""
    return site_url.rstrip("/") + "/" + path.lstrip("/")


def status_of(response: object) -> int:
    """Return the status code of ``response``.

    Raises:
        MalformedResponseError: If ``response`` carries no integer status.
    """
    status = getattr(response, "status_code", None)
    if isinstance(status, bool) or not isinstance(status, int):
        raise MalformedResponseError(
            f"Response has no usable status code: {type(response).__name__}"
        )
    return status


def body_text(response: httpx.Response) -> str | None:
    """Return the decoded response body, or None when empty."""
    try:
        text = response.text
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return None
    return text or None


class NightscoutClient:
    """Thin async client for one Nightscout site.

    Usage::

        client = NightscoutClient("https://cgm.example.org", "my-secret")
        response = await client.probe()
    """

    def __init__(
        self,
        site_url: str,
        api_key: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            site_url:    Base URL of the Nightscout site.
            api_key:     Plain API secret; hashed for the request header.
            http_client: Optional pre-configured httpx client (for testing
                         and connection reuse).
            timeout:     Request timeout in seconds. None keeps the httpx
                         default.
        """
        self._site_url = site_url
        self._api_key = api_key
        self._http_client = http_client
        self._timeout = timeout

    def _build_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "api-secret": hash_api_secret(self._api_key),
        }

    async def _request(
        self, method: str, path: str, content: bytes | None = None
    ) -> httpx.Response:
        """Send one request and return the response, whatever its status.

        Raises:
            TransportError: If no response was received.
        """
        url = build_url(self._site_url, path)
        headers = self._build_headers()
        logger.debug("Nightscout %s %s", method, url)
        try:
            if self._http_client:
                return await self._http_client.request(
                    method, url, headers=headers, content=content
                )
            client_kwargs = {} if self._timeout is None else {"timeout": self._timeout}
            async with httpx.AsyncClient(**client_kwargs) as client:
                return await client.request(method, url, headers=headers, content=content)
        except httpx.RequestError as exc:
            raise TransportError(str(exc) or type(exc).__name__) from exc
        except httpx.InvalidURL as exc:
            raise TransportError(f"Invalid Nightscout URL {url!r}: {exc}") from exc

    async def probe(self) -> httpx.Response:
        """GET the authenticated test endpoint."""
        return await self._request("GET", AUTH_TEST_PATH)

    async def post_entries(self, body: bytes) -> httpx.Response:
        """POST a JSON array of entries.

        Args:
            body: Already-encoded JSON document.

        Returns:
            The collector's response.

        Raises:
            TransportError:         On network failure.
            MalformedResponseError: If the response carries no status.
            HTTPStatusError:        On a status outside 200–299.
        """
        response = await self._request("POST", ENTRIES_PATH, content=body)
        status = status_of(response)
        if not 200 <= status <= 299:
            raise HTTPStatusError(status, body_text(response))
        return response
