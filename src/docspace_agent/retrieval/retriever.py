"""Retrieval scope selection for one agent turn."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field

from docspace_agent.agent.intent import Intent
from docspace_agent.config import RetrievalConfig
from docspace_agent.ingest.parser import ParserRegistry
from docspace_agent.retrieval.index import EmbeddingIndex
from docspace_agent.types import SearchResult

logger = logging.getLogger(__name__)

TRANSIENT_PREFIX = "transient-"


@dataclass(slots=True)
class InlineDocument:
    """A document attached to a single chat message."""

    filename: str
    content: str


@dataclass(slots=True)
class RetrievalOutcome:
    results: list[SearchResult]
    has_relevant_docs: bool = True
    scope: str = "open"
    restricted_to: list[str] = field(default_factory=list)
    transient_doc_id: str | None = None


class ScopedRetriever:
    """Decides which part of the index a turn may search, then searches it.

    Precedence:
    1. caller-supplied document ids, unless the message looks beyond them;
    2. cross-document phrasing or named documents: whole-index search;
    3. a meaningful inline document: indexed transiently and searched alone;
    4. otherwise open retrieval over the whole index.

    Open retrieval oversamples (`open_candidates_k`), keeps hits above
    `relevance_threshold`, and degrades to the best `fallback_k` hits when
    none clear it. Only an index with no hits at all marks the turn as
    having no relevant documents.
    """

    def __init__(
        self,
        index: EmbeddingIndex,
        parsers: ParserRegistry,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.index = index
        self.parsers = parsers
        self.config = config or RetrievalConfig()

    def retrieve(
        self,
        message: str,
        intent: Intent,
        *,
        document_ids: Sequence[str] | None = None,
        inline_document: InlineDocument | None = None,
    ) -> RetrievalOutcome:
        """Search the scope selected for `message`.

        A transient document indexed here is reported in
        `RetrievalOutcome.transient_doc_id`; the caller must release it with
        `release()` once the turn is over.
        """

        if document_ids and not intent.widens_scope:
            results = self.index.search(message, self.config.final_k, doc_ids=document_ids)
            logger.info("Restricted retrieval over %d document(s): %d hits", len(document_ids), len(results))
            return RetrievalOutcome(
                results=results, scope="restricted", restricted_to=list(document_ids)
            )

        if intent.widens_scope:
            if document_ids:
                logger.info("Cross-document intent overrides restriction to %s", list(document_ids))
            outcome = self._open_retrieval(message)
            outcome.scope = "cross-document"
            return outcome

        if inline_document is not None and self.is_meaningful(inline_document):
            doc_id = f"{TRANSIENT_PREFIX}{uuid.uuid4()}"
            parsed = self.parsers.parse_text(
                inline_document.content, filename=inline_document.filename
            )
            self.index.index_document(
                doc_id, inline_document.filename, parsed.segments, transient=True
            )
            try:
                results = self.index.search(message, self.config.final_k, doc_ids=[doc_id])
            except Exception:
                self.index.delete_document(doc_id)
                raise
            return RetrievalOutcome(
                results=results,
                scope="inline",
                restricted_to=[doc_id],
                transient_doc_id=doc_id,
            )

        return self._open_retrieval(message)

    def release(self, outcome: RetrievalOutcome) -> None:
        if outcome.transient_doc_id:
            self.index.delete_document(outcome.transient_doc_id)

    def is_meaningful(self, document: InlineDocument) -> bool:
        text = document.content.strip()
        if len(text) < self.config.min_inline_chars:
            return False
        return not text.startswith(self.config.inline_placeholder_prefix)

    def _open_retrieval(self, message: str) -> RetrievalOutcome:
        candidates = self.index.search(message, self.config.open_candidates_k)
        relevant = [hit for hit in candidates if hit.score > self.config.relevance_threshold]
        if relevant:
            logger.info("Open retrieval: %d relevant hits", len(relevant))
            return RetrievalOutcome(results=relevant[: self.config.final_k])
        if candidates:
            logger.info(
                "Open retrieval: no hit above %.2f, using best %d",
                self.config.relevance_threshold,
                min(len(candidates), self.config.fallback_k),
            )
            return RetrievalOutcome(results=candidates[: self.config.fallback_k])
        logger.info("Open retrieval: index has no matches")
        return RetrievalOutcome(results=[], has_relevant_docs=False)
