"""Parsing interfaces and concrete parsers producing located text segments."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from docspace_agent.errors import ParseError, UnsupportedTypeError
from docspace_agent.ingest.chunker import LineWindowChunker
from docspace_agent.types import ParsedDocument, Segment

logger = logging.getLogger(__name__)


class Parser(ABC):
    """Base parser interface used by the ingest pipeline and the tools."""

    extensions: tuple[str, ...] = ()

    def __init__(self, chunker: LineWindowChunker) -> None:
        self.chunker = chunker

    @abstractmethod
    def parse(self, path: Path, *, filename: str) -> ParsedDocument:
        """Parse a file into ordered segments with location metadata."""


class TextParser(Parser):
    """Plain text, markdown and LaTeX sources."""

    extensions = (".txt", ".md", ".markdown", ".tex", ".log", ".csv")

    def parse(self, path: Path, *, filename: str) -> ParsedDocument:
        text = path.read_text(encoding="utf-8", errors="replace")
        return self.parse_text(text, filename=filename)

    def parse_text(self, text: str, *, filename: str) -> ParsedDocument:
        return ParsedDocument(
            filename=filename,
            text=text,
            segments=self.chunker.chunk_text(text),
            metadata={"format": "text"},
        )


class PdfParser(Parser):
    """PDF parser; one chunking pass per page so citations carry the page."""

    extensions = (".pdf",)

    def parse(self, path: Path, *, filename: str) -> ParsedDocument:
        from pypdf import PdfReader

        reader = PdfReader(str(path))
        texts: list[str] = []
        segments: list[Segment] = []
        for number, page in enumerate(reader.pages, start=1):
            page_text = (page.extract_text() or "").strip()
            if not page_text:
                continue
            texts.append(page_text)
            segments.extend(self.chunker.chunk_text(page_text, page=number))
        if not segments:
            raise ParseError(
                f"PDF {filename} has {len(reader.pages)} pages but no extractable text"
            )
        return ParsedDocument(
            filename=filename,
            text="\n\n".join(texts),
            segments=segments,
            metadata={"format": "pdf", "pages": len(reader.pages)},
        )


class DocxParser(Parser):
    extensions = (".docx",)

    def parse(self, path: Path, *, filename: str) -> ParsedDocument:
        from docx import Document

        document = Document(str(path))
        text = "\n".join(paragraph.text for paragraph in document.paragraphs).strip()
        return ParsedDocument(
            filename=filename,
            text=text,
            segments=self.chunker.chunk_text(text),
            metadata={"format": "docx"},
        )


class XlsxParser(Parser):
    """Spreadsheet parser; each sheet is chunked separately and tagged."""

    extensions = (".xlsx",)

    def parse(self, path: Path, *, filename: str) -> ParsedDocument:
        from openpyxl import load_workbook

        workbook = load_workbook(str(path), read_only=True, data_only=True)
        try:
            texts: list[str] = []
            segments: list[Segment] = []
            for sheet in workbook.worksheets:
                rows = [
                    "\t".join("" if cell is None else str(cell) for cell in row)
                    for row in sheet.iter_rows(values_only=True)
                ]
                sheet_text = "\n".join(rows).strip()
                if not sheet_text:
                    continue
                texts.append(sheet_text)
                segments.extend(self.chunker.chunk_text(sheet_text, sheet=sheet.title))
        finally:
            workbook.close()
        return ParsedDocument(
            filename=filename,
            text="\n\n".join(texts),
            segments=segments,
            metadata={"format": "xlsx"},
        )


class ParserRegistry:
    """Chooses a parser by file extension and normalises its failures."""

    def __init__(
        self,
        chunker: LineWindowChunker | None = None,
        parsers: list[Parser] | None = None,
    ) -> None:
        self.chunker = chunker or LineWindowChunker()
        self.text_parser = TextParser(self.chunker)
        self._parsers: dict[str, Parser] = {}
        for parser in parsers or [
            self.text_parser,
            PdfParser(self.chunker),
            DocxParser(self.chunker),
            XlsxParser(self.chunker),
        ]:
            self.register(parser)

    def register(self, parser: Parser) -> None:
        for extension in parser.extensions:
            self._parsers[extension.lower()] = parser

    def supports(self, filename: str) -> bool:
        return Path(filename).suffix.lower() in self._parsers

    def parse_path(self, path: str | Path, *, filename: str | None = None) -> ParsedDocument:
        file_path = Path(path)
        display_name = filename or file_path.name
        parser = self._parsers.get(Path(display_name).suffix.lower())
        if parser is None:
            raise UnsupportedTypeError(
                f"No parser registered for extension: {Path(display_name).suffix or '(none)'}"
            )
        try:
            return parser.parse(file_path, filename=display_name)
        except ParseError:
            raise
        except Exception as exc:
            logger.warning("Parsing %s failed: %s", display_name, exc)
            raise ParseError(f"Failed to parse {display_name}: {exc}") from exc

    def parse_text(self, content: str, *, filename: str = "inline.txt") -> ParsedDocument:
        """Chunk already-extracted text (direct indexing, inline documents)."""
        return self.text_parser.parse_text(content, filename=filename)
