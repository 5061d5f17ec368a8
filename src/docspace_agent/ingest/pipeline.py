"""Workspace ingest flows: upload, direct indexing, deletion and clearing."""

from __future__ import annotations

import logging
import re
import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from docspace_agent.errors import InvalidRequestError, NotFoundError, ParseError
from docspace_agent.ingest.parser import ParserRegistry
from docspace_agent.retrieval.index import EmbeddingIndex
from docspace_agent.types import DocumentRecord

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[\\/\x00]")


@dataclass(slots=True)
class UploadResult:
    filename: str
    status: str
    doc_id: str | None = None
    warning: str | None = None


class IngestPipeline:
    """Coordinates the workspace directory, the parsers and the index.

    Uploaded files are stored as `<epoch-ms>-<original name>` so repeated
    uploads of the same name never collide. A file that fails to parse is
    kept in the workspace and reported with a warning instead of being
    rejected; direct indexing of text, on the other hand, fails outright.
    """

    def __init__(
        self,
        parsers: ParserRegistry,
        index: EmbeddingIndex,
        workspace_root: str | Path,
    ) -> None:
        self.parsers = parsers
        self.index = index
        self.workspace_root = Path(workspace_root)
        self.workspace_root.mkdir(parents=True, exist_ok=True)

    def save_upload(self, original_name: str, data: bytes) -> Path:
        base = _UNSAFE_CHARS.sub("_", Path(original_name).name).strip()
        if not base or base in (".", ".."):
            raise InvalidRequestError("A file name is required")
        target = self.workspace_root / f"{int(time.time() * 1000)}-{base}"
        target.write_bytes(data)
        logger.info("Saved upload %s as %s (%d bytes)", original_name, target.name, len(data))
        return target

    def ingest_upload(self, original_name: str, data: bytes) -> UploadResult:
        path = self.save_upload(original_name, data)
        try:
            parsed = self.parsers.parse_path(path, filename=Path(original_name).name)
        except ParseError as exc:
            logger.warning("Upload %s kept without indexing: %s", path.name, exc)
            return UploadResult(
                filename=path.name,
                status="uploaded",
                warning=f"File uploaded but parsing failed: {exc.message}",
            )

        doc_id = str(uuid.uuid4())
        self.index.index_document(doc_id, path.name, parsed.segments)
        return UploadResult(filename=path.name, status="indexed", doc_id=doc_id)

    def index_text(self, filename: str, content: str) -> DocumentRecord:
        """Index already-extracted text without a physical upload."""
        if not filename or not content:
            raise InvalidRequestError("filename and content required")
        parsed = self.parsers.parse_text(content, filename=filename)
        if not parsed.segments:
            raise ParseError(f"No indexable text in {filename}")
        return self.index.index_document(str(uuid.uuid4()), filename, parsed.segments)

    def index_batch(self, items: Iterable[tuple[str, str]]) -> list[DocumentRecord]:
        records: list[DocumentRecord] = []
        for filename, content in items:
            if not filename or not content:
                continue
            records.append(self.index_text(filename, content))
        return records

    def delete(self, id_or_filename: str) -> list[str]:
        """Delete index entries and backing files; returns the removed file names."""
        records = self.index.resolve(id_or_filename)
        if not self.index.delete_document(id_or_filename):
            raise NotFoundError(f"Document not found: {id_or_filename}")

        filenames = {record.filename for record in records} | {id_or_filename}
        removed: list[str] = []
        root = self.workspace_root.resolve()
        for name in filenames:
            path = (root / Path(name).name).resolve()
            if path.parent == root and path.is_file():
                path.unlink()
                removed.append(path.name)
                logger.info("Deleted file %s", path.name)
        return removed

    def clear_all(self) -> int:
        """Empty the index and delete every file in the workspace root."""
        self.index.clear()
        deleted = 0
        for entry in self.workspace_root.iterdir():
            if entry.is_file():
                try:
                    entry.unlink()
                except OSError as exc:
                    logger.warning("Failed to delete %s: %s", entry.name, exc)
                    continue
                deleted += 1
        logger.info("Cleared all documents: %d files deleted", deleted)
        return deleted
