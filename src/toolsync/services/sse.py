"""Incremental Server-Sent Events parsing.

``iter_frames`` turns an async stream of text chunks into ``SseFrame``
objects, one per ``data:`` line. Chunk boundaries may fall anywhere, so the
trailing partial line of each read is held back until the next one.
"""

from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, Iterator, List, Tuple

DEFAULT_EVENT = "message"


@dataclass(frozen=True)
class SseFrame:
    event: str
    data: str


def _field(line: str, name: str) -> str | None:
    prefix = name + ":"
    if not line.startswith(prefix):
        return None
    value = line[len(prefix):]
    if value.startswith(" "):
        value = value[1:]
    return value


class SseLineParser:
    """Stateful line parser shared by the sync and async entry points."""

    def __init__(self) -> None:
        self._buffer = ""
        self._event = DEFAULT_EVENT

    def feed(self, chunk: str) -> List[SseFrame]:
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return list(self._parse(lines))

    def close(self) -> List[SseFrame]:
        """Flush a final line that was not newline-terminated."""
        rest, self._buffer = self._buffer, ""
        return list(self._parse([rest])) if rest else []

    def _parse(self, lines: List[str]) -> Iterator[SseFrame]:
        for raw in lines:
            line = raw.rstrip("\r")
            if not line.strip():
                # Blank line ends the frame; the event name does not carry over.
                self._event = DEFAULT_EVENT
                continue
            if line.startswith(":"):
                continue
            event = _field(line, "event")
            if event is not None:
                self._event = event.strip() or DEFAULT_EVENT
                continue
            data = _field(line, "data")
            if data is not None:
                yield SseFrame(event=self._event, data=data)


async def iter_frames(chunks: AsyncIterable[str]) -> AsyncIterator[SseFrame]:
    """Yield frames lazily as chunks arrive; stop when the chunk source ends.

    Breaking out of the consuming loop leaves the rest of the source unread.
    """
    parser = SseLineParser()
    async for chunk in chunks:
        for frame in parser.feed(chunk):
            yield frame
    for frame in parser.close():
        yield frame


def parse_frames(text: str) -> Tuple[SseFrame, ...]:
    """Parse a complete SSE body in one go."""
    parser = SseLineParser()
    return tuple(parser.feed(text) + parser.close())
