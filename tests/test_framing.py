"""Tests for SSE decoding and encoding."""

import pytest

from nim_proxy.framing import (
    KEEPALIVE_FRAME,
    FrameKind,
    SSEDecoder,
    SSEFrame,
    encode_frame,
    parse_line,
)


@pytest.mark.parametrize("split", [1, 5, 8, 12, 13, 14])
def test_frame_split_across_chunks(split):
    raw = b'data: {"a":1}\n\n'
    decoder = SSEDecoder()

    frames = decoder.feed(raw[:split]) + decoder.feed(raw[split:])

    assert len(frames) == 1
    assert frames[0].kind is FrameKind.JSON
    assert frames[0].payload == {"a": 1}
    assert decoder.buffer == ""


def test_partial_line_is_held_back():
    decoder = SSEDecoder()
    assert decoder.feed(b'data: {"a"') == []
    assert decoder.buffer == 'data: {"a"'


def test_multiple_frames_in_one_chunk():
    decoder = SSEDecoder()
    frames = decoder.feed(b'data: {"n":1}\n\ndata: {"n":2}\n\ndata: [DONE]\n\n')
    assert [f.kind for f in frames] == [FrameKind.JSON, FrameKind.JSON, FrameKind.DONE]
    assert [f.payload for f in frames[:2]] == [{"n": 1}, {"n": 2}]


def test_undecodable_line_passes_through_and_stream_continues():
    decoder = SSEDecoder()
    frames = decoder.feed(b'data: not json\n\ndata: {"ok":true}\n\n')

    assert frames[0].kind is FrameKind.RAW
    assert frames[0].line == "data: not json"
    assert frames[1].payload == {"ok": True}


def test_done_sentinel_is_not_decoded():
    frame = parse_line("data: [DONE]")
    assert frame.kind is FrameKind.DONE
    assert frame.payload is None
    assert encode_frame(frame) == b"data: [DONE]\n\n"


def test_done_inside_content_is_still_json():
    frame = parse_line('data: {"content":"[DONE]"}')
    assert frame.kind is FrameKind.JSON
    assert frame.payload == {"content": "[DONE]"}


@pytest.mark.parametrize("line", [": keepalive", "event: message", "", "id: 3"])
def test_non_data_lines_are_ignored(line):
    assert parse_line(line) is None


def test_data_prefix_without_space():
    frame = parse_line('data:{"a":2}')
    assert frame.payload == {"a": 2}


def test_crlf_line_endings():
    decoder = SSEDecoder()
    frames = decoder.feed(b'data: {"a":1}\r\n\r\n')
    assert frames[0].payload == {"a": 1}


def test_multibyte_character_split_across_chunks():
    raw = 'data: {"c":"héllo"}\n\n'.encode()
    cut = raw.index("é".encode()) + 1
    decoder = SSEDecoder()

    frames = decoder.feed(raw[:cut]) + decoder.feed(raw[cut:])

    assert frames[0].payload == {"c": "héllo"}


def test_flush_processes_unterminated_line():
    decoder = SSEDecoder()
    assert decoder.feed(b'data: {"a":1}\n\ndata: [DONE]') != []
    frames = decoder.flush()
    assert [f.kind for f in frames] == [FrameKind.DONE]
    assert decoder.flush() == []


def test_encode_json_frame_is_compact():
    frame = SSEFrame(kind=FrameKind.JSON, line="ignored", payload={"a": 1, "b": "ü"})
    assert encode_frame(frame) == 'data: {"a":1,"b":"ü"}\n\n'.encode()


def test_encode_raw_frame_appends_separator():
    frame = SSEFrame(kind=FrameKind.RAW, line="data: garbage")
    assert encode_frame(frame) == b"data: garbage\n\n"


def test_keepalive_is_a_comment():
    assert KEEPALIVE_FRAME.startswith(b":")
    assert KEEPALIVE_FRAME.endswith(b"\n\n")
