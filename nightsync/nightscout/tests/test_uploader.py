"""Tests for the watermarked entries uploader."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from nightsync.nightscout.base import InMemoryReadingSource, Reading
from nightsync.nightscout.settings_store import InMemorySettingsStore, SettingKey
from nightsync.nightscout.sync.uploader import MAX_UPLOAD_COUNT, EntryUploader
from nightsync.nightscout.tests.conftest import (
    TEST_SITE_URL,
    TEST_START,
    make_readings,
    mock_client_returning,
)


class _StaleSource(InMemoryReadingSource):
    """Source that ignores the ``since`` bound."""

    async def latest_readings(self, limit: int, since: datetime | None = None) -> list[Reading]:
        return await super().latest_readings(limit, since=None)


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestUploadSuccess:
    @pytest.mark.asyncio
    async def test_posts_pending_readings_and_advances_watermark(
        self,
        configured_store: InMemorySettingsStore,
        reading_source: InMemoryReadingSource,
        readings: list[Reading],
        ok_http_client: MagicMock,
    ) -> None:
        uploader = EntryUploader(reading_source, configured_store, http_client=ok_http_client)

        result = await uploader.upload()

        assert result.status == "success"
        assert result.readings_uploaded == 3
        assert configured_store.watermark == max(r.timestamp for r in readings)
        assert result.watermark == configured_store.watermark

        args, kwargs = ok_http_client.request.call_args
        assert args == ("POST", f"{TEST_SITE_URL}/api/v1/entries")
        body = json.loads(kwargs["content"])
        assert [d["sgv"] for d in body] == [102, 101, 100]  # newest first

    @pytest.mark.asyncio
    async def test_watermark_written_exactly_once(
        self,
        configured_store: InMemorySettingsStore,
        reading_source: InMemoryReadingSource,
        ok_http_client: MagicMock,
    ) -> None:
        changes: list[object] = []
        configured_store.subscribe(
            lambda key, value: changes.append(value) if key is SettingKey.WATERMARK else None
        )

        await EntryUploader(reading_source, configured_store, http_client=ok_http_client).upload()

        assert len(changes) == 1

    @pytest.mark.asyncio
    async def test_only_readings_after_watermark_are_sent(
        self,
        configured_store: InMemorySettingsStore,
        reading_source: InMemoryReadingSource,
        readings: list[Reading],
        ok_http_client: MagicMock,
    ) -> None:
        configured_store.watermark = readings[0].timestamp

        result = await EntryUploader(
            reading_source, configured_store, http_client=ok_http_client
        ).upload()

        assert result.readings_uploaded == 2
        body = json.loads(ok_http_client.request.call_args.kwargs["content"])
        assert {d["_id"] for d in body} == {"reading-1", "reading-2"}

    @pytest.mark.asyncio
    async def test_second_upload_sends_only_new_readings(
        self,
        configured_store: InMemorySettingsStore,
        reading_source: InMemoryReadingSource,
        ok_http_client: MagicMock,
    ) -> None:
        uploader = EntryUploader(reading_source, configured_store, http_client=ok_http_client)
        await uploader.upload()

        newer = Reading(timestamp=TEST_START + timedelta(hours=1), value_mgdl=140, reading_id="new")
        reading_source.add(newer)
        result = await uploader.upload()

        assert result.readings_uploaded == 1
        assert configured_store.watermark == newer.timestamp
        body = json.loads(ok_http_client.request.call_args.kwargs["content"])
        assert [d["_id"] for d in body] == ["new"]

    @pytest.mark.asyncio
    async def test_empty_response_body_is_success(
        self,
        configured_store: InMemorySettingsStore,
        reading_source: InMemoryReadingSource,
    ) -> None:
        http = mock_client_returning(httpx.Response(201))
        result = await EntryUploader(reading_source, configured_store, http_client=http).upload()
        assert result.status == "success"
        assert configured_store.watermark is not None

    @pytest.mark.asyncio
    async def test_upload_bounded_by_max_count(
        self, configured_store: InMemorySettingsStore, ok_http_client: MagicMock
    ) -> None:
        source = InMemoryReadingSource(make_readings(10))
        uploader = EntryUploader(source, configured_store, http_client=ok_http_client, max_count=4)

        result = await uploader.upload()

        assert result.readings_uploaded == 4
        body = json.loads(ok_http_client.request.call_args.kwargs["content"])
        assert [d["_id"] for d in body] == ["reading-9", "reading-8", "reading-7", "reading-6"]

    def test_default_max_count_is_one_week(self) -> None:
        assert MAX_UPLOAD_COUNT == 2016


# ---------------------------------------------------------------------------
# No-op and failure paths
# ---------------------------------------------------------------------------


class TestUploadNoop:
    @pytest.mark.asyncio
    async def test_no_pending_readings_makes_no_request(
        self, configured_store: InMemorySettingsStore, ok_http_client: MagicMock
    ) -> None:
        result = await EntryUploader(
            InMemoryReadingSource(), configured_store, http_client=ok_http_client
        ).upload()

        assert result.status == "skipped"
        ok_http_client.request.assert_not_awaited()
        assert configured_store.watermark is None

    @pytest.mark.asyncio
    async def test_missing_credentials_skips(
        self, reading_source: InMemoryReadingSource, ok_http_client: MagicMock
    ) -> None:
        store = InMemorySettingsStore({SettingKey.ENABLED: True, SettingKey.PRIMARY_ROLE: True})
        result = await EntryUploader(reading_source, store, http_client=ok_http_client).upload()
        assert result.status == "skipped"
        ok_http_client.request.assert_not_awaited()


class TestUploadFailure:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 404, 500, 503])
    async def test_non_2xx_leaves_watermark(
        self,
        configured_store: InMemorySettingsStore,
        reading_source: InMemoryReadingSource,
        status: int,
    ) -> None:
        http = mock_client_returning(httpx.Response(status))
        result = await EntryUploader(reading_source, configured_store, http_client=http).upload()

        assert result.status == "error"
        assert configured_store.watermark is None
        assert http.request.await_count == 1

    @pytest.mark.asyncio
    async def test_transport_error_leaves_watermark(
        self, configured_store: InMemorySettingsStore, reading_source: InMemoryReadingSource
    ) -> None:
        http = mock_client_returning(None)
        http.request.side_effect = httpx.ReadTimeout("read timed out")

        result = await EntryUploader(reading_source, configured_store, http_client=http).upload()

        assert result.status == "error"
        assert "read timed out" in result.error
        assert configured_store.watermark is None
        assert http.request.await_count == 1

    @pytest.mark.asyncio
    async def test_malformed_response_leaves_watermark(
        self, configured_store: InMemorySettingsStore, reading_source: InMemoryReadingSource
    ) -> None:
        http = mock_client_returning(object())
        result = await EntryUploader(reading_source, configured_store, http_client=http).upload()
        assert result.status == "error"
        assert configured_store.watermark is None

    @pytest.mark.asyncio
    async def test_serialization_error_aborts_before_request(
        self, configured_store: InMemorySettingsStore, ok_http_client: MagicMock
    ) -> None:
        source = InMemoryReadingSource(
            [Reading(timestamp=TEST_START, value_mgdl=float("nan"))]
        )
        result = await EntryUploader(source, configured_store, http_client=ok_http_client).upload()

        assert result.status == "error"
        ok_http_client.request.assert_not_awaited()
        assert configured_store.watermark is None

    @pytest.mark.asyncio
    async def test_failed_window_is_offered_again(
        self, configured_store: InMemorySettingsStore, reading_source: InMemoryReadingSource
    ) -> None:
        http = mock_client_returning(httpx.Response(500))
        uploader = EntryUploader(reading_source, configured_store, http_client=http)
        await uploader.upload()

        http.request.return_value = httpx.Response(200)
        result = await uploader.upload()

        assert result.readings_uploaded == 3


# ---------------------------------------------------------------------------
# Watermark invariants
# ---------------------------------------------------------------------------


class TestWatermark:
    @pytest.mark.asyncio
    async def test_watermark_never_moves_backwards(
        self, configured_store: InMemorySettingsStore, ok_http_client: MagicMock
    ) -> None:
        later = TEST_START + timedelta(days=1)
        configured_store.watermark = later
        source = _StaleSource(make_readings(3))

        result = await EntryUploader(source, configured_store, http_client=ok_http_client).upload()

        assert result.status == "success"
        assert configured_store.watermark == later

    @pytest.mark.asyncio
    async def test_watermark_non_decreasing_across_mixed_outcomes(
        self, configured_store: InMemorySettingsStore
    ) -> None:
        source = InMemoryReadingSource()
        http = mock_client_returning(httpx.Response(200))
        uploader = EntryUploader(source, configured_store, http_client=http)
        seen = []

        for i, status in enumerate([200, 500, 200, 401, 200]):
            source.add(
                Reading(timestamp=TEST_START + timedelta(minutes=5 * i), value_mgdl=100 + i)
            )
            http.request.return_value = httpx.Response(status)
            await uploader.upload()
            seen.append(configured_store.watermark)

        assert seen[0] == TEST_START
        assert seen[1] == TEST_START  # failed: unchanged
        assert all(
            a <= b for a, b in zip(seen, seen[1:]) if a is not None and b is not None
        )
        assert seen[-1] == TEST_START + timedelta(minutes=20)

    @pytest.mark.asyncio
    async def test_overlapping_uploads_do_not_resend(
        self, configured_store: InMemorySettingsStore, reading_source: InMemoryReadingSource
    ) -> None:
        async def slow_ok(*args, **kwargs) -> httpx.Response:
            await asyncio.sleep(0.01)
            return httpx.Response(200)

        http = MagicMock()
        http.request = AsyncMock(side_effect=slow_ok)
        uploader = EntryUploader(reading_source, configured_store, http_client=http)

        first, second = await asyncio.gather(uploader.upload(), uploader.upload())

        assert http.request.await_count == 1
        assert {first.status, second.status} == {"success", "skipped"}
