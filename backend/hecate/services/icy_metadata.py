"""
Client-side ICY metadata handling: pulls "now playing" fields out of a
Shoutcast/Icecast audio stream.

A listener that sends Icy-MetaData: 1 gets back an icy-metaint value and a
body in which every metaint audio bytes are followed by a single length byte
and then length * 16 bytes of NUL-padded text. A length byte of zero is the
usual case and means the title has not changed.

The decoder throws the audio away, gathers each text block however the
network happens to chunk it, and parses the block's key='value'; pairs
(StreamTitle, StreamUrl, ...) into a dict.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, Union

logger = logging.getLogger(__name__)

# Metadata length is sent in units of 16 bytes
METADATA_BLOCK_UNIT = 16
MAX_METADATA_LENGTH = 255 * METADATA_BLOCK_UNIT

FIELD_DELIMITER = "';"
KEY_VALUE_SEPARATOR = "='"


class MetadataDecodeError(ValueError):
    """Raised when a metadata block is not valid text."""


@dataclass(frozen=True)
class SkippingAudio:
    """Audio bytes remaining before the next length marker."""
    remaining: int

    @property
    def bytes_needed(self) -> int:
        return self.remaining


@dataclass(frozen=True)
class AwaitingLengthMarker:
    """The next byte is the metadata length in 16-byte units."""

    @property
    def bytes_needed(self) -> int:
        return 1


@dataclass(frozen=True)
class CapturingMetadata:
    """Metadata bytes remaining in the current block (may be 0)."""
    remaining: int

    @property
    def bytes_needed(self) -> int:
        return self.remaining


FrameState = Union[SkippingAudio, AwaitingLengthMarker, CapturingMetadata]


def _clean_segment(segment: str) -> str:
    return segment.strip().strip("\x00").strip()


def decode_metadata(raw: bytes) -> Dict[str, str]:
    """
    Parse one assembled metadata block into a key/value mapping.

    Malformed fields are skipped; only bytes that are not valid UTF-8
    raise MetadataDecodeError.

    Args:
        raw: Metadata block bytes, without the length prefix

    Returns:
        Mapping of field name to value (last occurrence wins)
    """
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MetadataDecodeError(f"Metadata block is not valid UTF-8: {e}") from e

    segments = [_clean_segment(s) for s in text.split(FIELD_DELIMITER)]
    last_index = len(segments) - 1

    fields: Dict[str, str] = {}
    for index, segment in enumerate(segments):
        if not segment or KEY_VALUE_SEPARATOR not in segment:
            continue

        key, _, value = segment.partition(KEY_VALUE_SEPARATOR)

        # Unquoted junk ahead of the key ("garbage;StreamTitle='...") is its own field
        key = key.rpartition(";")[2].strip()
        if not key:
            continue

        # Last field without a trailing ';' still carries its closing quote
        if index == last_index and value.endswith("'"):
            value = value[:-1]

        fields[key] = value

    return fields


def encode_metadata(fields: Dict[str, str]) -> bytes:
    """
    Build a complete metadata frame (length byte + padded block).

    Args:
        fields: Metadata fields, e.g. {"StreamTitle": "Artist - Song"}

    Returns:
        Frame bytes ready to be inserted after metaint audio bytes
    """
    if not fields:
        return b"\x00"

    metadata_str = "".join(f"{key}='{value}';" for key, value in fields.items())
    metadata_bytes = metadata_str.encode("utf-8")

    if len(metadata_bytes) > MAX_METADATA_LENGTH:
        raise ValueError(
            f"Metadata is {len(metadata_bytes)} bytes, limit is {MAX_METADATA_LENGTH}"
        )

    # Length byte = ceil(len / 16), actual padded length = length_byte * 16
    length_byte = (len(metadata_bytes) + METADATA_BLOCK_UNIT - 1) // METADATA_BLOCK_UNIT
    padded_metadata = metadata_bytes.ljust(length_byte * METADATA_BLOCK_UNIT, b"\x00")

    return bytes([length_byte]) + padded_metadata


class IcyMetadataDecoder:
    """
    Extracts ICY metadata records from an audio stream delivered in chunks.

    Chunks may be any size and need not line up with frame boundaries; bytes
    are held in a pending buffer until the current state can resolve.

    Usage:
        decoder = IcyMetadataDecoder(metaint=int(headers["icy-metaint"]))

        async for chunk in response.content.iter_any():
            for record in decoder.feed(chunk):
                print(record.get("StreamTitle"))
    """

    def __init__(self, metaint: int):
        """
        Initialize the decoder.

        Args:
            metaint: Number of audio bytes between metadata frames,
                     taken from the icy-metaint response header.
        """
        if metaint <= 0:
            raise ValueError(f"metaint must be positive, got {metaint}")

        self.metaint = metaint
        self._state: FrameState = SkippingAudio(metaint)
        self._buffer = bytearray()

    @property
    def state(self) -> FrameState:
        """Current position in the audio/metadata cycle."""
        return self._state

    @property
    def buffered(self) -> int:
        """Number of received bytes not yet consumed."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> Iterator[Dict[str, str]]:
        """
        Append a chunk and run every transition the buffer allows.

        The chunk is buffered immediately; transitions run as the returned
        iterator is consumed, so each record is handed out before any later
        block in the same chunk is decoded.

        Args:
            chunk: Next bytes from the stream

        Returns:
            Iterator over records decoded from metadata blocks completed by
            this chunk, in stream order

        Raises:
            MetadataDecodeError: A completed metadata block is not valid text
                                 (raised while iterating)
        """
        self._buffer.extend(chunk)
        return self._drain()

    def _drain(self) -> Iterator[Dict[str, str]]:
        while len(self._buffer) >= self._state.bytes_needed:
            state = self._state

            if isinstance(state, SkippingAudio):
                del self._buffer[:state.remaining]
                self._state = AwaitingLengthMarker()
                continue

            if isinstance(state, AwaitingLengthMarker):
                length_byte = self._buffer[0]
                del self._buffer[:1]
                self._state = CapturingMetadata(length_byte * METADATA_BLOCK_UNIT)
                continue

            raw = bytes(self._buffer[:state.remaining])
            del self._buffer[:state.remaining]
            self._state = SkippingAudio(self.metaint)

            if raw:
                metadata = decode_metadata(raw)
                logger.debug(f"Decoded metadata block ({len(raw)} bytes): {metadata}")
                yield metadata
