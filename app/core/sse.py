"""
Event-stream framing.

Each frame is a UTF-8 text block terminated by a blank line:
- data frame:      "data: <json>\\n\\n"
- heartbeat frame: ":heartbeat\\n\\n" (comment line; clients skip it without JSON parsing)
"""
from dataclasses import dataclass
from typing import Iterable, Iterator, Literal, Optional

HEARTBEAT_FRAME = ":heartbeat\n\n"

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Connection": "keep-alive",
    # Reverse proxies (nginx and compatibles) buffer responses by default;
    # without this a proxied client receives nothing until the buffer fills.
    "X-Accel-Buffering": "no",
}
STREAM_MEDIA_TYPE = "text/event-stream"


def encode_data(payload: str) -> str:
    """Wrap one JSON document as a data frame (multi-line payloads get one data: line each)."""
    lines = payload.splitlines() or [""]
    return "".join(f"data: {line}\n" for line in lines) + "\n"


@dataclass(frozen=True, slots=True)
class Frame:
    kind: Literal["data", "comment"]
    data: str


class FrameDecoder:
    """Incremental decoder: feed lines (without terminators), get complete frames."""

    def __init__(self) -> None:
        self._data: list[str] = []
        self._comment: Optional[str] = None

    def feed(self, line: str) -> Optional[Frame]:
        line = line.rstrip("\r\n")
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            self._comment = line[1:].strip()
            return None
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            self._data.append(value)
        # event:, id:, retry: are not used by this stream
        return None

    def _dispatch(self) -> Optional[Frame]:
        if self._data:
            frame = Frame("data", "\n".join(self._data))
        elif self._comment is not None:
            frame = Frame("comment", self._comment)
        else:
            frame = None
        self._data = []
        self._comment = None
        return frame


def decode_lines(lines: Iterable[str]) -> Iterator[Frame]:
    decoder = FrameDecoder()
    for line in lines:
        frame = decoder.feed(line)
        if frame is not None:
            yield frame
