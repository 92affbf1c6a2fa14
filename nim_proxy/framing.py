"""Server-sent events framing for the upstream and outgoing streams."""

import codecs
import enum
import json
import logging
from dataclasses import dataclass
from typing import Any

from nim_proxy.errors import StreamDecodeError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
KEEPALIVE_FRAME = b": keepalive\n\n"


class FrameKind(enum.Enum):
    JSON = "json"
    DONE = "done"
    RAW = "raw"


@dataclass
class SSEFrame:
    """One decoded ``data:`` line.

    ``line`` is the original line as received; ``payload`` is only set for
    JSON frames.
    """
    kind: FrameKind
    line: str
    payload: Any = None


def decode_payload(data: str) -> Any:
    try:
        return json.loads(data)
    except ValueError as e:
        raise StreamDecodeError(f"Undecodable SSE payload: {data[:200]!r}") from e


def parse_line(line: str) -> SSEFrame | None:
    """Turn one complete line into a frame, or None for non-data lines."""
    if not line.startswith(DATA_PREFIX):
        return None

    data = line[len(DATA_PREFIX):]
    if data.startswith(" "):
        data = data[1:]

    if data.strip() == DONE_SENTINEL:
        return SSEFrame(kind=FrameKind.DONE, line=line)

    try:
        payload = decode_payload(data)
    except StreamDecodeError as e:
        logger.debug(f"Forwarding raw SSE line: {e}")
        return SSEFrame(kind=FrameKind.RAW, line=line)
    return SSEFrame(kind=FrameKind.JSON, line=line, payload=payload)


class SSEDecoder:
    """
    Incremental decoder for a ``data: <payload>\\n\\n`` byte stream.

    Chunks may split lines (or multi-byte characters) anywhere; only the
    trailing incomplete line is held in ``buffer`` between calls.
    """

    def __init__(self) -> None:
        self.buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes | str) -> list[SSEFrame]:
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self.buffer += chunk

        *lines, self.buffer = self.buffer.split("\n")
        return self._parse(lines)

    def flush(self) -> list[SSEFrame]:
        """Process whatever is left once the upstream stream has ended."""
        tail = self.buffer + self._utf8.decode(b"", final=True)
        self.buffer = ""
        if not tail:
            return []
        return self._parse([tail])

    @staticmethod
    def _parse(lines: list[str]) -> list[SSEFrame]:
        frames = []
        for line in lines:
            frame = parse_line(line.rstrip("\r"))
            if frame is not None:
                frames.append(frame)
        return frames


def encode_frame(frame: SSEFrame) -> bytes:
    """Serialize a frame back into the outgoing wire format."""
    if frame.kind is FrameKind.JSON:
        data = json.dumps(frame.payload, ensure_ascii=False, separators=(",", ":"))
        return f"{DATA_PREFIX} {data}\n\n".encode("utf-8")
    return f"{frame.line}\n\n".encode("utf-8")
