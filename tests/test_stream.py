"""Tests for incremental stream frame decoding.

Covers:
- SSE delimiters (LF and CRLF) and NDJSON lines
- Chunking invariance: any split of the same bytes yields the same frames
- Buffer consumption and end-of-stream flushing
- Extraction of SSE data payloads
"""

from typing import List

from termai.stream import (
    Delimiter,
    Framing,
    StreamDecoder,
    consume_prefix,
    find_sse_delimiter,
    sse_data_payloads,
)

SSE_STREAM = (
    b'data: {"n":1}\n\n'
    b"event: ping\ndata: {\"n\":2}\r\n\r\n"
    b'data: {"n":3}\n\n'
    b"data: [DONE]\n\n"
)


def _decode_in_pieces(data: bytes, sizes: List[int], framing: Framing) -> List[bytes]:
    """Feed data to a fresh decoder in pieces of the given sizes, then flush."""
    decoder = StreamDecoder(framing)
    frames: List[bytes] = []
    pos = 0
    for size in sizes:
        frames.extend(decoder.feed(data[pos:pos + size]))
        pos += size
    frames.extend(decoder.feed(data[pos:]))
    frames.extend(decoder.flush())
    return frames


class TestFindSseDelimiter:
    """Tests for locating SSE event boundaries."""

    def test_lf(self) -> None:
        assert find_sse_delimiter(b"data: a\n\nrest") == Delimiter(7, 2)

    def test_crlf(self) -> None:
        assert find_sse_delimiter(b"data: a\r\n\r\nrest") == Delimiter(7, 4)

    def test_earliest_wins(self) -> None:
        """When both forms are present, the one that occurs first is used."""
        assert find_sse_delimiter(b"a\r\n\r\nb\n\n") == Delimiter(1, 4)
        assert find_sse_delimiter(b"a\n\nb\r\n\r\n") == Delimiter(1, 2)

    def test_incomplete(self) -> None:
        assert find_sse_delimiter(b"data: partial\n") is None


class TestStreamDecoder:
    """Tests for StreamDecoder."""

    def test_whole_stream_in_one_read(self) -> None:
        """All events are returned in order from a single read."""
        frames = StreamDecoder(Framing.SSE).feed(SSE_STREAM)
        assert frames == [
            b'data: {"n":1}',
            b'event: ping\ndata: {"n":2}',
            b'data: {"n":3}',
            b"data: [DONE]",
        ]

    def test_chunking_invariance(self) -> None:
        """One read and many arbitrary reads produce identical frames."""
        expected = _decode_in_pieces(SSE_STREAM, [], Framing.SSE)
        for sizes in ([1] * len(SSE_STREAM), [3, 7, 11, 2], [14, 1, 1, 30], [len(SSE_STREAM) - 1]):
            assert _decode_in_pieces(SSE_STREAM, sizes, Framing.SSE) == expected

    def test_crlf_delimiter_split_across_reads(self) -> None:
        """A CRLF delimiter split between reads is still recognised."""
        decoder = StreamDecoder(Framing.SSE)
        assert decoder.feed(b"data: x\r\n") == []
        assert decoder.feed(b"\r") == []
        assert decoder.feed(b"\ndata: y") == [b"data: x"]
        assert decoder.pending == len(b"data: y")

    def test_ndjson_lines(self) -> None:
        """NDJSON framing splits on single newlines."""
        data = b'{"a":1}\n{"a":2}\n{"a":3}'
        frames = _decode_in_pieces(data, [5, 5, 5], Framing.NDJSON)
        assert frames == [b'{"a":1}', b'{"a":2}', b'{"a":3}']

    def test_flush_returns_unterminated_tail(self) -> None:
        """Bytes left without a delimiter come out of flush as one frame."""
        decoder = StreamDecoder(Framing.SSE)
        assert decoder.feed(b"data: tail") == []
        assert decoder.flush() == [b"data: tail"]
        assert decoder.pending == 0

    def test_flush_drops_whitespace(self) -> None:
        """Whitespace-only leftovers are not turned into a frame."""
        decoder = StreamDecoder(Framing.NDJSON)
        decoder.feed(b'{"a":1}\n  \r')
        assert decoder.flush() == []

    def test_empty_read(self) -> None:
        """An empty read yields nothing and buffers nothing."""
        decoder = StreamDecoder(Framing.SSE)
        assert decoder.feed(b"") == []
        assert decoder.pending == 0


def test_consume_prefix() -> None:
    """consume_prefix removes bytes in place and tolerates over-long lengths."""
    buf = bytearray(b"abcdef")
    consume_prefix(buf, 2)
    assert buf == bytearray(b"cdef")
    consume_prefix(buf, 100)
    assert buf == bytearray()


def test_sse_data_payloads() -> None:
    """Only non-empty data: payloads are returned, trimmed and decoded."""
    frame = b"event: delta\r\nid: 7\r\n: comment\r\ndata:  first \r\ndata:\r\ndata:second"
    assert sse_data_payloads(frame) == ["first", "second"]


def test_sse_data_payloads_invalid_utf8() -> None:
    """Undecodable bytes are replaced rather than raising."""
    payloads = sse_data_payloads(b"data: \xff\xfeok")
    assert len(payloads) == 1
    assert payloads[0].endswith("ok")
