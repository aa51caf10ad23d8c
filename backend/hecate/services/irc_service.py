"""
IRC client service - connection, registration and line protocol.

Only what the bot needs is implemented: NICK/USER registration, joining
channels after the welcome reply, PING/PONG keep-alive and PRIVMSG.
"""
import asyncio
import logging
import ssl
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional

logger = logging.getLogger(__name__)

# RFC 1459 line limit including the trailing CRLF
MAX_LINE_BYTES = 512

RPL_WELCOME = "001"


class IrcError(Exception):
    """Connection to the IRC server failed or was lost."""


@dataclass
class IrcMessage:
    """A single parsed IRC protocol line."""
    command: str
    params: List[str] = field(default_factory=list)
    prefix: Optional[str] = None

    @property
    def nick(self) -> Optional[str]:
        """Nickname part of the prefix (nick!user@host)."""
        if not self.prefix:
            return None
        return self.prefix.split("!", 1)[0]

    @classmethod
    def parse(cls, line: str) -> "IrcMessage":
        """Parse a raw line (without CRLF) into prefix, command and params."""
        prefix = None
        if line.startswith(":"):
            prefix, _, line = line[1:].partition(" ")

        trailing = None
        if " :" in line:
            line, trailing = line.split(" :", 1)
        elif line.startswith(":"):
            line, trailing = "", line[1:]

        parts = line.split()
        if not parts:
            raise ValueError("IRC line has no command")

        params = parts[1:]
        if trailing is not None:
            params.append(trailing)

        return cls(command=parts[0].upper(), params=params, prefix=prefix)


class IrcSender:
    """
    Write side of an IRC connection.

    One sender is shared by every task that talks to the server; writes are
    serialized so lines from different tasks never interleave.
    """

    def __init__(self, writer: asyncio.StreamWriter):
        self._writer = writer
        self._lock = asyncio.Lock()

    async def send_raw(self, line: str) -> None:
        """Send one protocol line, truncated to the IRC line limit."""
        data = line.encode("utf-8")[:MAX_LINE_BYTES - 2]
        # Truncation may split a multi-byte character
        data = data.decode("utf-8", errors="ignore").encode("utf-8")

        async with self._lock:
            if self._writer.is_closing():
                raise IrcError("Connection is closed")
            self._writer.write(data + b"\r\n")
            await self._writer.drain()

    async def send_privmsg(self, target: str, text: str) -> None:
        """Send a message to a channel or nick; one PRIVMSG per line of text."""
        for line in text.splitlines():
            if line:
                await self.send_raw(f"PRIVMSG {target} :{line}")

    async def send_pong(self, token: str) -> None:
        await self.send_raw(f"PONG :{token}")


class IrcClient:
    """Minimal asyncio IRC client."""

    def __init__(
        self,
        server: str,
        port: int = 6667,
        nickname: str = "Hecate",
        channels: Optional[List[str]] = None,
        use_tls: bool = False,
    ):
        self._server = server
        self._port = port
        self._nickname = nickname
        self._channels = list(channels or [])
        self._use_tls = use_tls
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._sender: Optional[IrcSender] = None
        self._registered = False

    @property
    def nickname(self) -> str:
        return self._nickname

    @property
    def is_connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    @property
    def is_registered(self) -> bool:
        """True once the server has sent the welcome reply."""
        return self._registered

    @property
    def sender(self) -> IrcSender:
        """Shared sender for this connection."""
        if self._sender is None:
            raise IrcError("Not connected")
        return self._sender

    async def connect(self) -> None:
        """Open the connection and register the nickname."""
        ssl_context = ssl.create_default_context() if self._use_tls else None

        logger.info(f"Connecting to IRC server {self._server}:{self._port}")
        try:
            self._reader, self._writer = await asyncio.open_connection(
                self._server, self._port, ssl=ssl_context
            )
        except OSError as e:
            raise IrcError(f"Could not connect to {self._server}:{self._port}: {e}") from e

        self._sender = IrcSender(self._writer)
        self._registered = False
        await self.identify()

    async def identify(self) -> None:
        """Send NICK and USER registration lines."""
        await self.sender.send_raw(f"NICK {self._nickname}")
        await self.sender.send_raw(f"USER {self._nickname} 0 * :{self._nickname}")

    async def messages(self) -> AsyncIterator[IrcMessage]:
        """
        Yield messages from the server until the connection closes.

        PING is answered here and channels are joined once registration
        completes; every message (including those) is still yielded.

        Raises:
            IrcError: Not connected or the connection failed mid-read
        """
        if self._reader is None:
            raise IrcError("Not connected")

        while True:
            try:
                raw = await self._reader.readline()
            except (OSError, asyncio.IncompleteReadError) as e:
                raise IrcError(f"Connection lost: {e}") from e
            except ValueError as e:
                # Line over the reader limit; readline() has already discarded it
                logger.warning(f"Skipping oversized IRC line: {e}")
                continue

            if not raw:
                logger.info("IRC server closed the connection")
                return

            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line:
                continue

            try:
                message = IrcMessage.parse(line)
            except ValueError:
                logger.debug(f"Ignoring unparseable line: {line!r}")
                continue

            if message.command == "PING":
                await self.sender.send_pong(message.params[0] if message.params else "")
            elif message.command == RPL_WELCOME:
                self._registered = True
                logger.info(f"Registered as {self._nickname}")
                for channel in self._channels:
                    await self.sender.send_raw(f"JOIN {channel}")
                    logger.info(f"Joining {channel}")

            yield message

    async def close(self) -> None:
        """Send QUIT and close the connection."""
        if self._writer is None:
            return

        if not self._writer.is_closing():
            try:
                await self.sender.send_raw("QUIT :Bye")
            except (IrcError, OSError) as e:
                logger.debug(f"QUIT not sent: {e}")
            self._writer.close()

        try:
            await self._writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error while closing IRC connection: {e}")

        self._writer = None
        self._reader = None
        logger.info("IRC connection closed")
