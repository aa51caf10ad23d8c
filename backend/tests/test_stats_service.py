"""Tests for Icecast listener statistics."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from hecate.models import ListenerStats
from hecate.services.stats_service import StatsError, StatsService, parse_icestats


def _mock_session(status=200, payload=None, side_effect=None):
    """Session whose get() works as an async context manager."""
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=payload)

    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=resp, side_effect=side_effect)
    ctx.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.closed = False
    session.get = MagicMock(return_value=ctx)
    session.close = AsyncMock()
    return session


class TestParseIcestats:
    """Test extraction of listener counts from status JSON."""

    def test_single_source_object(self):
        data = {"icestats": {"source": {"listeners": 4, "listener_peak": 12}}}

        assert parse_icestats(data) == ListenerStats(current=4, peak=12)

    def test_source_list_uses_first_mount(self):
        data = {
            "icestats": {
                "source": [
                    {"listeners": 2, "listener_peak": 9},
                    {"listeners": 50, "listener_peak": 80},
                ]
            }
        }

        assert parse_icestats(data) == ListenerStats(current=2, peak=9)

    def test_missing_icestats(self):
        with pytest.raises(StatsError):
            parse_icestats({"something": "else"})

    def test_not_a_dict(self):
        with pytest.raises(StatsError):
            parse_icestats(["icestats"])

    def test_no_source(self):
        # Icecast omits "source" when nothing is streaming
        with pytest.raises(StatsError):
            parse_icestats({"icestats": {"admin": "icemaster@localhost"}})

    def test_empty_source_list(self):
        with pytest.raises(StatsError):
            parse_icestats({"icestats": {"source": []}})

    def test_missing_peak(self):
        with pytest.raises(StatsError):
            parse_icestats({"icestats": {"source": {"listeners": 3}}})

    def test_non_integer_count(self):
        with pytest.raises(StatsError):
            parse_icestats({"icestats": {"source": {"listeners": "3", "listener_peak": 5}}})

    def test_negative_count(self):
        with pytest.raises(StatsError):
            parse_icestats({"icestats": {"source": {"listeners": -1, "listener_peak": 5}}})


class TestStatsService:
    """Test fetching stats over HTTP."""

    @pytest.fixture
    def service(self):
        return StatsService("http://radio.test:8000/status-json.xsl")

    @pytest.mark.asyncio
    async def test_get_stats(self, service):
        payload = {"icestats": {"source": {"listeners": 7, "listener_peak": 21}}}
        session = _mock_session(payload=payload)
        service._session = session

        stats = await service.get_stats()

        assert stats == ListenerStats(current=7, peak=21)
        assert session.get.call_args[0][0] == "http://radio.test:8000/status-json.xsl"

    @pytest.mark.asyncio
    async def test_http_error_status(self, service):
        service._session = _mock_session(status=503)

        with pytest.raises(StatsError, match="503"):
            await service.get_stats()

    @pytest.mark.asyncio
    async def test_connection_error(self, service):
        service._session = _mock_session(side_effect=aiohttp.ClientConnectionError("refused"))

        with pytest.raises(StatsError, match="refused"):
            await service.get_stats()

    @pytest.mark.asyncio
    async def test_timeout(self, service):
        service._session = _mock_session(side_effect=asyncio.TimeoutError())

        with pytest.raises(StatsError, match="timed out"):
            await service.get_stats()

    @pytest.mark.asyncio
    async def test_invalid_json(self, service):
        session = _mock_session()
        resp = await session.get().__aenter__()
        resp.json.side_effect = ValueError("Expecting value")
        service._session = session

        with pytest.raises(StatsError, match="not JSON"):
            await service.get_stats()

    @pytest.mark.asyncio
    async def test_close(self, service):
        session = _mock_session()
        service._session = session

        await service.close()

        session.close.assert_awaited_once()
