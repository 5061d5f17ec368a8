"""Built-in workspace tools. Every path is confined to the workspace root."""

from __future__ import annotations

import fnmatch
import logging
import re
import uuid
from pathlib import Path

from docspace_agent.agent.registry import (
    CreateLatexFileInput,
    ExtractDocumentInput,
    GrepFilesInput,
    InsertTextInput,
    ListDirInput,
    ReadFileInput,
    ToolRegistry,
    ToolSpec,
)
from docspace_agent.errors import (
    AccessDeniedError,
    IndexingError,
    InvalidArgumentError,
    NotFoundError,
    ToolExecutionError,
    UnsupportedTypeError,
)
from docspace_agent.ingest.chunker import split_lines
from docspace_agent.ingest.parser import ParserRegistry
from docspace_agent.retrieval.index import EmbeddingIndex
from docspace_agent.types import CreatedFile, ToolOutput

logger = logging.getLogger(__name__)

EMPTY_DIRECTORY = "(empty directory)"
NO_MATCHES = "No matches found."
EXTRACTABLE_EXTENSIONS = (".pdf", ".docx", ".txt")


def resolve_in_workspace(root: Path, path: str) -> Path:
    """Resolve `path` against `root`, refusing anything that lands outside it."""
    root = root.resolve()
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = root / candidate
    resolved = candidate.resolve()
    if resolved != root and not resolved.is_relative_to(root):
        raise AccessDeniedError(f"Path escapes the workspace: {path}")
    return resolved


def workspace_file(root: Path, filename: str) -> Path:
    """Keep only the base name of `filename` and place it in the root."""
    base = re.split(r"[\\/]", filename)[-1].strip()
    if base in ("", ".", ".."):
        raise InvalidArgumentError(f"Invalid filename: {filename!r}")
    return root.resolve() / base


def read_file(root: Path, file_path: str) -> str:
    path = resolve_in_workspace(root, file_path)
    if not path.is_file():
        raise NotFoundError(f"File not found: {file_path}")
    return path.read_text(encoding="utf-8", errors="replace")


def extract_document(root: Path, file_path: str, parsers: ParserRegistry) -> tuple[str, int]:
    """Return the full text of a document and how many segments it parsed into."""
    path = resolve_in_workspace(root, file_path)
    if path.suffix.lower() not in EXTRACTABLE_EXTENSIONS:
        raise UnsupportedTypeError(
            f"Unsupported document type {path.suffix or '(none)'}; "
            f"expected one of {', '.join(EXTRACTABLE_EXTENSIONS)}"
        )
    if not path.is_file():
        raise NotFoundError(f"File not found: {file_path}")
    parsed = parsers.parse_path(path)
    full_text = "\n\n".join(segment.text for segment in parsed.segments)
    return full_text, len(parsed.segments)


def list_dir(root: Path, target_directory: str = ".", recursive: bool = False) -> list[str]:
    """List entries relative to `target_directory`; directories end with `/`."""
    base = resolve_in_workspace(root, target_directory)
    if not base.is_dir():
        raise NotFoundError(f"Not a directory: {target_directory}")

    entries: list[str] = []

    def _walk(directory: Path, prefix: str) -> None:
        for item in sorted(directory.iterdir(), key=lambda p: p.name):
            if item.name.startswith("."):
                continue
            display = f"{prefix}{item.name}"
            if item.is_dir():
                entries.append(f"{display}/")
                if recursive:
                    _walk(item, f"{display}/")
            else:
                entries.append(display)

    _walk(base, "")
    return entries


def insert_text(root: Path, filename: str, text: str, line: int, column: int = 1) -> str:
    """Insert `text` at a 1-based line/column and rewrite the file.

    `line == line_count + 1` appends a new last line; `column == 1` inserts a
    whole new line before `line`; any other column splices into that line.
    Concurrent writers are last-writer-wins.
    """
    path = workspace_file(root, filename)
    if not path.is_file():
        raise NotFoundError(f"File not found: {path.name}")
    if line < 1:
        raise InvalidArgumentError("line must be a positive number")
    if column < 1:
        raise InvalidArgumentError("column must be a positive number")

    lines = split_lines(path.read_text(encoding="utf-8"))
    if line > len(lines) + 1:
        raise InvalidArgumentError(
            f"Line {line} is beyond the end of the file (file has {len(lines)} lines)"
        )

    index = line - 1
    if index == len(lines):
        lines.append(text)
    elif column == 1:
        lines.insert(index, text)
    else:
        current = lines[index]
        offset = column - 1
        lines[index] = current[:offset] + text + current[offset:]

    path.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Inserted %d chars into %s at %d:%d", len(text), path.name, line, column)
    return f"Successfully inserted text into {path.name} at line {line}, column {column}."


def grep_files(
    root: Path,
    pattern: str,
    search_path: str = ".",
    include: str | None = None,
    limit: int = 100,
) -> list[str]:
    """Relative paths of text files whose content matches `pattern`, newest first."""
    try:
        regex = re.compile(pattern)
    except re.error as exc:
        raise InvalidArgumentError(f"Invalid pattern: {exc}") from exc

    resolved_root = root.resolve()
    base = resolve_in_workspace(root, search_path)
    if base.is_file():
        candidates = [base]
    elif base.is_dir():
        candidates = [
            p
            for p in base.rglob("*")
            if p.is_file() and not any(part.startswith(".") for part in p.relative_to(base).parts)
        ]
    else:
        raise NotFoundError(f"Path not found: {search_path}")

    matches: list[Path] = []
    for candidate in candidates:
        if include and not fnmatch.fnmatch(candidate.name, include):
            continue
        try:
            content = candidate.read_text(encoding="utf-8")
        except (UnicodeDecodeError, OSError):
            continue
        if regex.search(content):
            matches.append(candidate)

    matches.sort(key=lambda p: p.stat().st_mtime, reverse=True)
    return [str(p.relative_to(resolved_root)) for p in matches[:limit]]


_LATEX_TEMPLATE = r"""\documentclass[11pt,a4paper]{article}
\usepackage[utf8]{inputenc}
\usepackage[T1]{fontenc}
\usepackage{amsmath}
\usepackage{graphicx}
\usepackage{hyperref}
\usepackage{geometry}
\geometry{margin=1in}

\title{%(title)s}
\author{%(author)s}
\date{\today}

\begin{document}

\maketitle

\begin{abstract}
This article provides an overview of %(topic)s.
\end{abstract}

\section{Introduction}

\section{Background and Fundamentals}

\section{Key Concepts and Principles}

\section{Applications and Use Cases}

\section{Current Developments and Future Directions}

\section{Conclusion}

\begin{thebibliography}{9}
\bibitem{ref1}
Example reference. \textit{Journal Name}, Volume, Pages, Year.
\end{thebibliography}

\end{document}
"""


def create_latex_file(
    root: Path,
    filename: str,
    topic: str,
    title: str | None = None,
    author: str | None = None,
) -> Path:
    """Write a LaTeX article skeleton; refuses to overwrite an existing file."""
    path = workspace_file(root, filename)
    if path.suffix.lower() != ".tex":
        path = path.with_name(f"{path.name}.tex")
    if path.exists():
        raise ToolExecutionError(
            f"File already exists: {path.name}. Please choose a different filename."
        )
    content = _LATEX_TEMPLATE % {
        "title": title or f"{topic[:1].upper()}{topic[1:]}: An Overview",
        "author": author or "Author",
        "topic": topic,
    }
    path.write_text(content, encoding="utf-8")
    logger.info("Created LaTeX file %s", path.name)
    return path


def register_builtin_tools(
    registry: ToolRegistry,
    *,
    workspace_root: str | Path,
    parsers: ParserRegistry,
    index: EmbeddingIndex | None = None,
) -> None:
    """Register the workspace tool set used by the orchestrator.

    Tools:
    - `read_file`: raw text of a workspace file.
    - `extract_document`: parsed text of a PDF/DOCX/TXT document.
    - `list_dir`: workspace listing, optionally recursive.
    - `insert_text`: line/column insertion into a workspace file.
    - `grep_files`: regex search across workspace text files.
    - `create_latex_file`: new `.tex` article skeleton, indexed when an
      index is supplied.
    """

    root = Path(workspace_root)

    def _read(input_data: ReadFileInput) -> ToolOutput:
        return ToolOutput(content=read_file(root, input_data.file_path))

    def _extract(input_data: ExtractDocumentInput) -> ToolOutput:
        text, segment_count = extract_document(root, input_data.file_path, parsers)
        name = Path(input_data.file_path).name
        if not text.strip():
            return ToolOutput(content=f'Document "{name}" appears to be empty.')
        return ToolOutput(content=f"Document: {name} ({segment_count} segments)\n\n{text}")

    def _list(input_data: ListDirInput) -> ToolOutput:
        entries = list_dir(root, input_data.target_directory, input_data.recursive)
        return ToolOutput(content="\n".join(entries) if entries else EMPTY_DIRECTORY)

    def _insert(input_data: InsertTextInput) -> ToolOutput:
        return ToolOutput(
            content=insert_text(
                root,
                input_data.filename,
                input_data.text,
                input_data.line,
                input_data.column,
            )
        )

    def _grep(input_data: GrepFilesInput) -> ToolOutput:
        hits = grep_files(
            root,
            input_data.pattern,
            input_data.search_path,
            input_data.include,
            input_data.limit,
        )
        return ToolOutput(content="\n".join(hits) if hits else NO_MATCHES)

    def _create_latex(input_data: CreateLatexFileInput) -> ToolOutput:
        path = create_latex_file(
            root,
            input_data.filename,
            input_data.topic,
            input_data.title,
            input_data.author,
        )
        doc_id: str | None = None
        if index is not None:
            parsed = parsers.parse_path(path)
            doc_id = str(uuid.uuid4())
            try:
                index.index_document(doc_id, path.name, parsed.segments)
            except IndexingError as exc:
                logger.warning("Created %s but could not index it: %s", path.name, exc)
                doc_id = None
        return ToolOutput(
            content=(
                f"Successfully created LaTeX file: {path.name}. It contains an article "
                f'skeleton about "{input_data.topic}" with empty sections; read it with '
                "read_file to find line numbers before inserting content."
            ),
            created_files=[CreatedFile(filename=path.name, doc_id=doc_id)],
        )

    for spec in (
        ToolSpec(
            name="read_file",
            description="Read a text file from the workspace (uploaded documents directory).",
            args_schema=ReadFileInput,
            handler=_read,
            tags=["workspace"],
        ),
        ToolSpec(
            name="extract_document",
            description="Extract the full text of a PDF, DOCX or TXT document in the workspace.",
            args_schema=ExtractDocumentInput,
            handler=_extract,
            tags=["workspace", "parsing"],
        ),
        ToolSpec(
            name="list_dir",
            description="List files and folders in the workspace. Directories end with /.",
            args_schema=ListDirInput,
            handler=_list,
            tags=["workspace"],
        ),
        ToolSpec(
            name="insert_text",
            description=(
                "Insert text into a workspace file at a 1-based line and column. "
                "Read the file first to find exact line numbers."
            ),
            args_schema=InsertTextInput,
            handler=_insert,
            tags=["workspace", "edit"],
        ),
        ToolSpec(
            name="grep_files",
            description="Find workspace files whose content matches a regular expression.",
            args_schema=GrepFilesInput,
            handler=_grep,
            tags=["workspace", "search"],
        ),
        ToolSpec(
            name="create_latex_file",
            description="Create a new LaTeX (.tex) article skeleton about a topic.",
            args_schema=CreateLatexFileInput,
            handler=_create_latex,
            tags=["workspace", "edit"],
        ),
    ):
        registry.register(spec)
