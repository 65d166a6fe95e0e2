"""Credential verification against a Nightscout site.

Performs one authenticated probe and reports exactly one outcome.  Never
retries and never raises: every failure is folded into the returned
``VerificationResult``.
"""

from __future__ import annotations

import logging

import httpx

from nightsync.nightscout.base import VerificationResult
from nightsync.nightscout.client import NightscoutClient, body_text, status_of
from nightsync.nightscout.exceptions import MalformedResponseError, TransportError

logger = logging.getLogger("nightsync.nightscout.sync.verifier")


class CredentialVerifier:
    """Probe ``/api/v1/experiments/test`` with the hashed API secret."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self._http_client = http_client
        self._timeout = timeout

    async def verify(
        self, endpoint_url: str | None, api_key: str | None
    ) -> VerificationResult:
        """Check that the site accepts ``api_key``.

        Args:
            endpoint_url: Nightscout site URL.
            api_key:      Plain API secret.

        Returns:
            Success only for HTTP 200.  On a transport error the detail is
            the error text; on any other status it is the response body, or
            a generic status message when the body is empty.
            Missing credentials fail without a request.  A response with no
            usable status is a failure flagged ``malformed``.
        """
        if not endpoint_url or not api_key:
            return VerificationResult(
                success=False, failure_detail="Nightscout URL or API key missing"
            )

        client = NightscoutClient(
            endpoint_url, api_key, http_client=self._http_client, timeout=self._timeout
        )
        try:
            response = await client.probe()
            status = status_of(response)
        except TransportError as exc:
            logger.info("Nightscout probe to %s failed: %s", endpoint_url, exc)
            return VerificationResult(success=False, failure_detail=str(exc))
        except MalformedResponseError as exc:
            logger.error("Nightscout probe to %s: %s", endpoint_url, exc)
            return VerificationResult(
                success=False, failure_detail=str(exc), malformed=True
            )

        if status != 200:
            detail = body_text(response) or f"HTTP status {status}"
            logger.info(
                "Nightscout probe to %s rejected, status=%d", endpoint_url, status
            )
            return VerificationResult(success=False, failure_detail=detail)

        logger.info("Nightscout credentials verified for %s", endpoint_url)
        return VerificationResult(success=True)
