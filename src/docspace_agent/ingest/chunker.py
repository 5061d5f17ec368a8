"""Line-window chunking that keeps line-range provenance."""

from __future__ import annotations

import re

from docspace_agent.config import ChunkingConfig
from docspace_agent.types import ChunkLocation, Segment

_NEWLINES = re.compile(r"\r\n?")


def split_lines(text: str) -> list[str]:
    return _NEWLINES.sub("\n", text).split("\n")


class LineWindowChunker:
    """Packs consecutive lines into segments of at most `max_chars` characters.

    Every segment records the 1-based line range it covers so citations can
    point back at the source. Consecutive windows share `overlap_lines`
    lines; a single line longer than `max_chars` becomes its own segment so
    the window always advances.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk_text(
        self,
        text: str,
        *,
        page: int | None = None,
        sheet: str | None = None,
    ) -> list[Segment]:
        lines = split_lines(text)
        segments: list[Segment] = []
        start = 0
        while start < len(lines):
            end = start
            length = 0
            while end < len(lines) and length + len(lines[end]) + 1 <= self.config.max_chars:
                length += len(lines[end]) + 1
                end += 1
            if end == start:
                end += 1

            body = "\n".join(lines[start:end]).strip()
            if body:
                segments.append(
                    Segment(
                        text=body,
                        location=ChunkLocation(
                            line_start=start + 1,
                            line_end=end,
                            page=page,
                            sheet=sheet,
                        ),
                    )
                )
            if end >= len(lines):
                break
            start = max(end - self.config.overlap_lines, start + 1)
        return segments
