"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal


@dataclass(frozen=True, slots=True)
class ChunkLocation:
    """Where a piece of text came from inside its source file."""

    line_start: int
    line_end: int
    page: int | None = None
    sheet: str | None = None

    def label(self) -> str:
        parts: list[str] = []
        if self.page:
            parts.append(f"p{self.page}")
        if self.sheet:
            parts.append(f"sheet:{self.sheet}")
        parts.append(f"lines {self.line_start}-{self.line_end}")
        return " ".join(parts)


@dataclass(slots=True)
class Segment:
    """A parsed text segment before embedding."""

    text: str
    location: ChunkLocation


@dataclass(slots=True)
class ParsedDocument:
    """A parsed source document: ordered segments plus the full text."""

    filename: str
    text: str
    segments: list[Segment]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class DocumentRecord:
    """An indexed document."""

    doc_id: str
    filename: str
    chunk_count: int
    created_at: float
    transient: bool = False


@dataclass(frozen=True, slots=True)
class Chunk:
    """An indexed unit of text. The vector is computed once, at indexing."""

    chunk_id: str
    doc_id: str
    filename: str
    text: str
    location: ChunkLocation
    vector: tuple[float, ...]


@dataclass(slots=True)
class SearchResult:
    """A similarity hit; never persisted."""

    chunk: Chunk
    score: float

    def citation_label(self) -> str:
        return f"{self.chunk.filename} {self.chunk.location.label()}"


@dataclass(frozen=True, slots=True)
class Turn:
    """One message in a session history."""

    role: Literal["user", "assistant"]
    content: str


@dataclass(slots=True)
class CreatedFile:
    """A workspace file created by a tool during the agent loop."""

    filename: str
    doc_id: str | None = None


@dataclass(slots=True)
class ToolOutput:
    """Result of one tool handler."""

    content: str
    created_files: list[CreatedFile] = field(default_factory=list)


@dataclass(slots=True)
class ToolCallRecord:
    """Trace record for a tool invocation made during one agent turn."""

    name: str
    args: dict[str, Any]
    ok: bool = True
    latency_ms: float = 0.0


@dataclass(slots=True)
class Citation:
    """Structured citation for a retrieved passage used to answer."""

    filename: str
    doc_id: str
    score: float
    line_start: int
    line_end: int
    page: int | None = None
    sheet: str | None = None
    text_preview: str = ""

    @classmethod
    def from_result(cls, result: SearchResult, preview_chars: int = 320) -> "Citation":
        text = result.chunk.text
        preview = text if len(text) <= preview_chars else text[:preview_chars] + "…"
        return cls(
            filename=result.chunk.filename,
            doc_id=result.chunk.doc_id,
            score=result.score,
            line_start=result.chunk.location.line_start,
            line_end=result.chunk.location.line_end,
            page=result.chunk.location.page,
            sheet=result.chunk.location.sheet,
            text_preview=preview,
        )
