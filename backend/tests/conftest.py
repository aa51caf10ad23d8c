"""
Pytest configuration and shared fixtures for all tests
"""

from typing import List, Optional, Tuple

import pytest

from hecate.services.icy_metadata import encode_metadata


class RecordingSender:
    """Stands in for IrcSender; keeps every message sent."""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []

    async def send_privmsg(self, target: str, text: str) -> None:
        self.sent.append((target, text))


def build_stream(metaint: int, titles: List[Optional[str]], audio: bytes = b"\xff") -> bytes:
    """
    Build an ICY stream: for each entry, metaint audio bytes then a metadata
    frame (an empty frame for None).
    """
    audio_run = (audio * metaint)[:metaint]
    data = bytearray()
    for title in titles:
        data += audio_run
        data += encode_metadata({"StreamTitle": title} if title is not None else {})
    return bytes(data)


def split_every(data: bytes, size: int) -> List[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


@pytest.fixture
def sender():
    """Provide a sender that records messages."""
    return RecordingSender()
