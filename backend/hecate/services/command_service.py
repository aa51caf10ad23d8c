"""
Inbound IRC command handling - answers listener statistics queries.
"""
import logging
import re
from typing import Optional

from hecate.services.irc_service import IrcClient, IrcMessage, IrcSender
from hecate.services.stats_service import StatsError, StatsService

logger = logging.getLogger(__name__)

STATS_COMMANDS = ("nl", "nowlistening", "listeners")


def build_stats_pattern(nickname: str) -> "re.Pattern[str]":
    """Match '<nick>: nl', '<nick> listeners' and friends anywhere in a message."""
    commands = "|".join(STATS_COMMANDS)
    return re.compile(rf"{re.escape(nickname)}:?\s+({commands})")


class CommandService:
    def __init__(self, nickname: str, stats_service: StatsService, sender: IrcSender):
        self._nickname = nickname
        self._stats_service = stats_service
        self._sender = sender
        self._stats_pattern = build_stats_pattern(nickname)

    def reply_target(self, message: IrcMessage) -> Optional[str]:
        """Channel the message was sent to, or the sender for a private message."""
        if not message.params:
            return None
        target = message.params[0]
        if target.lower() == self._nickname.lower():
            return message.nick
        return target

    async def handle(self, message: IrcMessage) -> bool:
        """
        Handle a single message from the server.

        Returns:
            True if the message was a command and a reply was sent
        """
        if message.command != "PRIVMSG" or len(message.params) < 2:
            return False

        text = message.params[-1]
        logger.debug(f"<{message.nick}> {text}")

        if not self._stats_pattern.search(text):
            return False

        target = self.reply_target(message)
        if not target:
            return False

        try:
            stats = await self._stats_service.get_stats()
        except StatsError as e:
            logger.error(f"Stats query from {message.nick} failed: {e}")
            await self._sender.send_privmsg(target, "couldn't fetch listener stats")
            return True

        await self._sender.send_privmsg(
            target, f"current: {stats.current} | peak: {stats.peak}"
        )
        return True

    async def run(self, client: IrcClient) -> None:
        """Dispatch messages until the IRC connection closes."""
        logger.info("Listening for IRC commands...")
        async for message in client.messages():
            await self.handle(message)
        logger.info("IRC message loop ended")
