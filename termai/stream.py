"""Incremental frame decoding for streamed provider responses.

Providers stream either Server-Sent Events (events separated by a blank
line) or newline-delimited JSON. Network reads split the byte stream at
arbitrary points, so the decoder accumulates bytes and only hands out
frames once their delimiter has arrived. The sequence of frames produced
depends only on the bytes received, never on how they were chunked.
"""

from enum import Enum
from typing import List, NamedTuple, Optional


class Framing(str, Enum):
    """Wire framing used by a streaming response."""

    SSE = "sse"
    NDJSON = "ndjson"


class Delimiter(NamedTuple):
    """Position and byte length of a frame delimiter inside a buffer."""

    index: int
    length: int


def find_sse_delimiter(buf: bytes) -> Optional[Delimiter]:
    """Locate the first blank-line event separator in buf.

    Both ``\\n\\n`` and ``\\r\\n\\r\\n`` are accepted; whichever occurs first
    wins.

    Returns:
        The delimiter position, or None if no complete event is buffered.
    """
    lf = buf.find(b"\n\n")
    crlf = buf.find(b"\r\n\r\n")
    if lf < 0 and crlf < 0:
        return None
    if crlf < 0 or (lf >= 0 and lf < crlf):
        return Delimiter(lf, 2)
    return Delimiter(crlf, 4)


def find_ndjson_delimiter(buf: bytes) -> Optional[Delimiter]:
    """Locate the first line terminator in buf."""
    idx = buf.find(b"\n")
    if idx < 0:
        return None
    return Delimiter(idx, 1)


def consume_prefix(buf: bytearray, length: int) -> None:
    """Drop the first length bytes of buf in place.

    Consuming more than the buffer holds simply empties it.
    """
    if length >= len(buf):
        buf.clear()
    else:
        del buf[:length]


class StreamDecoder:
    """Stateful frame extractor for one streaming response.

    The only state is the buffer of bytes not yet resolved into a complete
    frame. A decoder must not be shared between calls.
    """

    def __init__(self, framing: Framing) -> None:
        self.framing = framing
        self._buffer = bytearray()
        if framing == Framing.SSE:
            self._find = find_sse_delimiter
        else:
            self._find = find_ndjson_delimiter

    @property
    def pending(self) -> int:
        """Number of buffered bytes that do not yet form a frame."""
        return len(self._buffer)

    def feed(self, data: bytes) -> List[bytes]:
        """Append a raw read and return every frame it completed, in order."""
        if data:
            self._buffer.extend(data)

        frames: List[bytes] = []
        while True:
            delim = self._find(self._buffer)
            if delim is None:
                break
            frames.append(bytes(self._buffer[: delim.index]))
            consume_prefix(self._buffer, delim.index + delim.length)
        return frames

    def flush(self) -> List[bytes]:
        """Return any trailing unterminated bytes as a final frame.

        Called once the underlying stream has ended. Whitespace-only
        leftovers are discarded.
        """
        rest = bytes(self._buffer)
        self._buffer.clear()
        if not rest.strip():
            return []
        return [rest]


def sse_data_payloads(frame: bytes) -> List[str]:
    """Extract the ``data:`` payloads of one SSE event.

    Other fields (``event:``, ``id:``, comments) are ignored, as are blank
    payloads. Payloads are decoded as UTF-8; undecodable bytes are replaced
    so that a single bad byte cannot abort the stream.
    """
    payloads: List[str] = []
    for raw_line in frame.split(b"\n"):
        line = raw_line.rstrip(b"\r")
        if not line.startswith(b"data:"):
            continue
        payload = line[len(b"data:"):].strip(b" \t\r")
        if not payload:
            continue
        payloads.append(payload.decode("utf-8", errors="replace"))
    return payloads
