"""Embedding index: document/chunk tables, similarity search, JSON snapshots."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
import uuid
from collections.abc import Collection, Iterator, Sequence
from contextlib import contextmanager
from math import sqrt
from pathlib import Path
from typing import Any

from docspace_agent.errors import IndexingError, InvalidRequestError
from docspace_agent.ingest.embedder import Embedder
from docspace_agent.types import Chunk, ChunkLocation, DocumentRecord, SearchResult, Segment

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Many concurrent readers or one writer; writers are not starved."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class EmbeddingIndex:
    """Owns every indexed document and chunk.

    Mutations (`index_document`, `delete_document`, `clear`) build the next
    state, write it to the snapshot file and only then swap it in, all under
    the write lock. A search therefore never observes a half-indexed document,
    and a failed snapshot write leaves the in-memory index unchanged.

    Transient documents (inline attachments for a single turn) live in memory
    only: they are never written to the snapshot and are not counted.
    """

    def __init__(self, embedder: Embedder, snapshot_path: str | Path | None = None) -> None:
        self.embedder = embedder
        self.snapshot_path = Path(snapshot_path) if snapshot_path else None
        self._lock = ReadWriteLock()
        self._documents: dict[str, DocumentRecord] = {}
        self._chunks: list[Chunk] = []
        self._load()

    def index_document(
        self,
        doc_id: str,
        filename: str,
        segments: Sequence[Segment],
        *,
        transient: bool = False,
    ) -> DocumentRecord:
        """Embed and register a document. All-or-nothing."""

        texts = [segment.text for segment in segments]
        try:
            vectors = self.embedder.embed_documents(texts) if texts else []
        except Exception as exc:
            logger.error("Embedding failed for %s (%s): %s", filename, doc_id, exc)
            raise IndexingError(f"Failed to embed {filename}: {exc}") from exc
        if len(vectors) != len(texts):
            raise IndexingError(
                f"Embedder returned {len(vectors)} vectors for {len(texts)} segments"
            )

        new_chunks = [
            Chunk(
                chunk_id=str(uuid.uuid4()),
                doc_id=doc_id,
                filename=filename,
                text=segment.text,
                location=segment.location,
                vector=tuple(float(value) for value in vector),
            )
            for segment, vector in zip(segments, vectors, strict=True)
        ]
        record = DocumentRecord(
            doc_id=doc_id,
            filename=filename,
            chunk_count=len(new_chunks),
            created_at=time.time(),
            transient=transient,
        )

        with self._lock.write():
            if doc_id in self._documents:
                raise IndexingError(f"Document id already indexed: {doc_id}")
            documents = {**self._documents, doc_id: record}
            chunks = self._chunks + new_chunks
            if not transient:
                self._persist(documents, chunks)
            self._documents, self._chunks = documents, chunks

        logger.info(
            "Indexed %s (%s): %d chunks%s",
            filename,
            doc_id,
            len(new_chunks),
            " [transient]" if transient else "",
        )
        return record

    def search(
        self,
        query: str,
        top_k: int = 5,
        doc_ids: Collection[str] | None = None,
    ) -> list[SearchResult]:
        """Rank chunks with positive cosine similarity; ties keep insertion order.

        `doc_ids=None` searches every persistent document; transient ones are
        only reachable by naming their id. An empty `doc_ids` matches nothing.
        """

        if top_k < 1:
            raise InvalidRequestError("top_k must be a positive integer")
        restrict = set(doc_ids) if doc_ids is not None else None
        if restrict is not None and not restrict:
            return []
        with self._lock.read():
            if not self._chunks:
                return []
        query_vector = self.embedder.embed_query(query)

        with self._lock.read():
            if restrict is None:
                restrict = {
                    doc_id
                    for doc_id, record in self._documents.items()
                    if not record.transient
                }
            candidates = [chunk for chunk in self._chunks if chunk.doc_id in restrict]
        scored = [
            SearchResult(chunk=chunk, score=_cosine_similarity(query_vector, chunk.vector))
            for chunk in candidates
        ]
        # Chunks sharing nothing with the query are not hits.
        scored = [item for item in scored if item.score > 0.0]
        # sorted() is stable, so ties keep their original insertion order.
        ranked = sorted(scored, key=lambda item: item.score, reverse=True)
        return ranked[:top_k]

    def delete_document(self, id_or_filename: str) -> bool:
        """Remove every document matching the id or filename, with its chunks.

        A transient document only matches by id, so deleting a stored file
        never drops an inline attachment of the same name mid-turn.
        """

        with self._lock.write():
            doomed = {
                doc_id
                for doc_id, record in self._documents.items()
                if doc_id == id_or_filename
                or (record.filename == id_or_filename and not record.transient)
            }
            if not doomed:
                return False
            documents = {
                doc_id: record
                for doc_id, record in self._documents.items()
                if doc_id not in doomed
            }
            chunks = [chunk for chunk in self._chunks if chunk.doc_id not in doomed]
            if any(not self._documents[doc_id].transient for doc_id in doomed):
                self._persist(documents, chunks)
            self._documents, self._chunks = documents, chunks

        logger.info("Deleted %d document(s) matching %s", len(doomed), id_or_filename)
        return True

    def clear(self) -> None:
        with self._lock.write():
            self._persist({}, [])
            self._documents, self._chunks = {}, []
        logger.info("Index cleared")

    def count_documents(self) -> int:
        with self._lock.read():
            return sum(1 for record in self._documents.values() if not record.transient)

    def get(self, doc_id: str) -> DocumentRecord | None:
        with self._lock.read():
            return self._documents.get(doc_id)

    def resolve(self, id_or_filename: str) -> list[DocumentRecord]:
        with self._lock.read():
            return [
                record
                for record in self._documents.values()
                if record.doc_id == id_or_filename
                or (record.filename == id_or_filename and not record.transient)
            ]

    def list_documents(self) -> list[DocumentRecord]:
        with self._lock.read():
            return [record for record in self._documents.values() if not record.transient]

    def _persist(self, documents: dict[str, DocumentRecord], chunks: list[Chunk]) -> None:
        if self.snapshot_path is None:
            return
        payload = _to_snapshot(documents, chunks)
        self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.snapshot_path.name}.", dir=self.snapshot_path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle)
            os.replace(tmp_name, self.snapshot_path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise IndexingError(f"Failed to write index snapshot: {exc}") from exc

    def _load(self) -> None:
        if self.snapshot_path is None or not self.snapshot_path.exists():
            return
        try:
            raw = json.loads(self.snapshot_path.read_text(encoding="utf-8"))
            documents, chunks = _from_snapshot(raw)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning(
                "Failed to load index snapshot %s, starting empty: %s",
                self.snapshot_path,
                exc,
            )
            return
        self._documents, self._chunks = documents, chunks
        logger.info(
            "Loaded index snapshot: %d documents, %d chunks", len(documents), len(chunks)
        )


def _to_snapshot(documents: dict[str, DocumentRecord], chunks: list[Chunk]) -> dict[str, Any]:
    live = {doc_id for doc_id, record in documents.items() if not record.transient}
    return {
        "documents": {
            doc_id: {
                "id": doc_id,
                "filename": documents[doc_id].filename,
                "createdAt": documents[doc_id].created_at,
            }
            for doc_id in documents
            if doc_id in live
        },
        "chunks": [
            {
                "id": chunk.chunk_id,
                "docId": chunk.doc_id,
                "filename": chunk.filename,
                "text": chunk.text,
                "page": chunk.location.page,
                "sheet": chunk.location.sheet,
                "lineStart": chunk.location.line_start,
                "lineEnd": chunk.location.line_end,
                "vector": list(chunk.vector),
            }
            for chunk in chunks
            if chunk.doc_id in live
        ],
    }


def _from_snapshot(raw: dict[str, Any]) -> tuple[dict[str, DocumentRecord], list[Chunk]]:
    documents: dict[str, DocumentRecord] = {}
    for doc_id, meta in raw["documents"].items():
        documents[doc_id] = DocumentRecord(
            doc_id=doc_id,
            filename=str(meta["filename"]),
            chunk_count=0,
            created_at=float(meta.get("createdAt", 0.0)),
        )

    chunks: list[Chunk] = []
    for item in raw["chunks"]:
        doc_id = item["docId"]
        record = documents.get(doc_id)
        if record is None:
            continue
        chunks.append(
            Chunk(
                chunk_id=str(item.get("id") or uuid.uuid4()),
                doc_id=doc_id,
                filename=str(item["filename"]),
                text=str(item["text"]),
                location=ChunkLocation(
                    line_start=int(item["lineStart"]),
                    line_end=int(item["lineEnd"]),
                    page=item.get("page"),
                    sheet=item.get("sheet"),
                ),
                vector=tuple(float(value) for value in item["vector"]),
            )
        )
        record.chunk_count += 1
    return documents, chunks


def _cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
