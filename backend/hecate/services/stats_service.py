"""
Icecast listener statistics - reads the status-json.xsl endpoint.
"""
import asyncio
import logging
from typing import Any, Optional

import aiohttp

from hecate.models import ListenerStats

logger = logging.getLogger(__name__)


class StatsError(Exception):
    """Listener statistics could not be fetched or parsed."""


def parse_icestats(data: Any) -> ListenerStats:
    """
    Extract listener counts from an Icecast status document.

    Icecast reports "source" as an object for a single mount and as a
    list when several mounts are live; the first mount is used.
    """
    icestats = data.get("icestats") if isinstance(data, dict) else None
    if not isinstance(icestats, dict):
        raise StatsError("No icestats in status response")

    logger.debug(f"Got icestats: {icestats}")

    source = icestats.get("source")
    if isinstance(source, list):
        source = source[0] if source else None
    if not isinstance(source, dict):
        raise StatsError("No source in icestats")

    logger.debug(f"Extracted station: {source}")

    current = source.get("listeners")
    peak = source.get("listener_peak")
    for name, value in (("listeners", current), ("listener_peak", peak)):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise StatsError(f"Invalid {name} in source: {value!r}")

    return ListenerStats(current=current, peak=peak)


class StatsService:
    """Fetches current and peak listener counts from Icecast."""

    REQUEST_TIMEOUT_SECONDS = 10

    def __init__(self, stats_url: str):
        self._stats_url = stats_url
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self):
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def get_stats(self) -> ListenerStats:
        """
        Fetch listener statistics.

        Raises:
            StatsError: Request failed or the response has no usable source
        """
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.REQUEST_TIMEOUT_SECONDS)

        try:
            async with session.get(self._stats_url, timeout=timeout) as resp:
                if resp.status != 200:
                    raise StatsError(f"Status endpoint returned {resp.status}")
                # Icecast serves this as text/javascript on some versions
                data = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise StatsError(f"Status request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise StatsError("Status request timed out") from e
        except ValueError as e:
            raise StatsError(f"Status response is not JSON: {e}") from e

        stats = parse_icestats(data)
        logger.info(f"Listener stats: current={stats.current} peak={stats.peak}")
        return stats
