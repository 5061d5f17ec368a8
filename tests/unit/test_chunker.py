from docspace_agent.config import ChunkingConfig
from docspace_agent.ingest.chunker import LineWindowChunker, split_lines
from docspace_agent.ingest.parser import ParserRegistry


def test_chunker_records_line_ranges_and_overlap() -> None:
    lines = [f"line {n:03d} " + "x" * 40 for n in range(1, 41)]
    chunker = LineWindowChunker(ChunkingConfig(max_chars=200, overlap_lines=1))

    segments = chunker.chunk_text("\n".join(lines))

    assert len(segments) >= 2
    assert segments[0].location.line_start == 1
    assert segments[-1].location.line_end == 40
    assert all(len(segment.text) <= 200 for segment in segments)
    for previous, current in zip(segments, segments[1:]):
        assert current.location.line_start == previous.location.line_end
    first = segments[0]
    assert first.text.splitlines()[0] == lines[0]


def test_oversized_line_becomes_its_own_segment() -> None:
    chunker = LineWindowChunker(ChunkingConfig(max_chars=50, overlap_lines=2))
    text = "short\n" + "y" * 120 + "\ntail"

    segments = chunker.chunk_text(text)

    assert [s.location.line_start for s in segments] == [1, 2, 3]
    assert segments[1].text == "y" * 120


def test_chunker_tags_page_and_sheet() -> None:
    chunker = LineWindowChunker()

    page_segment = chunker.chunk_text("hello", page=3)[0]
    sheet_segment = chunker.chunk_text("a\tb", sheet="Budget")[0]

    assert page_segment.location.label() == "p3 lines 1-1"
    assert sheet_segment.location.label() == "sheet:Budget lines 1-1"


def test_split_lines_normalizes_line_endings() -> None:
    assert split_lines("a\r\nb\rc\n") == ["a", "b", "c", ""]


def test_parser_registry_parses_inline_text() -> None:
    parsed = ParserRegistry().parse_text("alpha\nbeta", filename="notes.md")

    assert parsed.filename == "notes.md"
    assert len(parsed.segments) == 1
    assert parsed.segments[0].location.line_end == 2
