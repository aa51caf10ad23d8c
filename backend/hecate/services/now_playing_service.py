"""
Now playing notifier - follows the ICY metadata of an Icecast stream and
announces title changes on IRC.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol

import aiohttp

from hecate.models import NotifierState, NowPlaying
from hecate.services.icy_metadata import IcyMetadataDecoder, MetadataDecodeError
from hecate.services.irc_service import IrcError

logger = logging.getLogger(__name__)

TITLE_KEY = "StreamTitle"


class MessageSink(Protocol):
    async def send_privmsg(self, target: str, text: str) -> None:
        ...


class StreamError(Exception):
    """The notifier failed; stage names where (connect, headers, read, decode, sink)."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.message = message


def parse_metaint(value: Optional[str]) -> int:
    """Parse the icy-metaint response header."""
    if value is None:
        raise StreamError("headers", "No icy-metaint response header")
    try:
        metaint = int(value.strip())
    except ValueError:
        raise StreamError("headers", f"Invalid icy-metaint header: {value!r}") from None
    if metaint <= 0:
        raise StreamError("headers", f"icy-metaint must be positive, got {metaint}")
    return metaint


class NowPlayingService:
    """
    Reads the stream with ICY metadata enabled and posts
    "now playing: <StreamTitle>" to the channel for every metadata record
    carrying a title.

    run() returns when the server ends the stream and raises StreamError
    when it fails. There is no reconnect.
    """

    def __init__(
        self,
        stream_url: str,
        channel: str,
        sender: MessageSink,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._stream_url = stream_url
        self._channel = channel
        self._sender = sender
        self._session = session
        self._owns_session = session is None
        self._status = NowPlaying()

    def get_status(self) -> NowPlaying:
        """Current title and stream state."""
        return self._status.model_copy()

    def _set_status(self, **changes) -> None:
        changes["updated_at"] = datetime.now(timezone.utc)
        self._status = self._status.model_copy(update=changes)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            # No total timeout: the stream is open for as long as the station is live
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=None, sock_connect=30)
            )
            self._owns_session = True
        return self._session

    async def close(self):
        """Close the HTTP session if this service created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def handle_record(self, record: Dict[str, str]) -> None:
        """Announce the title of one decoded metadata record, if it has one."""
        logger.info(f"Metadata: {record}")

        title = record.get(TITLE_KEY)
        if title is None:
            return

        self._set_status(title=title)
        try:
            await self._sender.send_privmsg(self._channel, f"now playing: {title}")
        except (IrcError, OSError) as e:
            raise StreamError("sink", f"Could not announce title: {e}") from e

    async def run(self) -> None:
        """
        Follow the stream until it ends.

        Raises:
            StreamError: Connection, header, read, metadata decode or sink failure
        """
        try:
            await self._follow_stream()
        except StreamError as e:
            logger.error(f"Stream failed at {e.stage}: {e.message}")
            self._set_status(state=NotifierState.FAILED, error=str(e))
            raise

        logger.info("Stream ended")
        self._set_status(state=NotifierState.ENDED)

    async def _follow_stream(self) -> None:
        session = await self._get_session()
        self._set_status(state=NotifierState.CONNECTING, error=None)

        try:
            async with session.get(self._stream_url, headers={"Icy-MetaData": "1"}) as resp:
                if resp.status != 200:
                    raise StreamError("connect", f"Stream returned HTTP {resp.status}")

                metaint = parse_metaint(resp.headers.get("icy-metaint"))
                logger.info(f"Connected to stream {self._stream_url} (metaint={metaint})")
                self._set_status(state=NotifierState.STREAMING, metaint=metaint)

                decoder = IcyMetadataDecoder(metaint)
                try:
                    async for chunk in resp.content.iter_any():
                        logger.debug(f"Chunk of {len(chunk)} bytes")
                        for record in decoder.feed(chunk):
                            await self.handle_record(record)
                except aiohttp.ClientError as e:
                    raise StreamError("read", str(e) or type(e).__name__) from e
                except asyncio.TimeoutError as e:
                    raise StreamError("read", "Timed out waiting for stream data") from e
                except MetadataDecodeError as e:
                    raise StreamError("decode", str(e)) from e

                if decoder.buffered:
                    logger.debug(f"Dropping {decoder.buffered} buffered bytes at end of stream")
        except aiohttp.ClientError as e:
            raise StreamError("connect", str(e) or type(e).__name__) from e
        except asyncio.TimeoutError as e:
            raise StreamError("connect", "Timed out connecting to stream") from e
