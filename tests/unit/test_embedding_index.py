import json

import pytest

from docspace_agent.errors import IndexingError, InvalidRequestError
from docspace_agent.ingest.embedder import Embedder, HashingEmbedder
from docspace_agent.retrieval.index import EmbeddingIndex
from docspace_agent.types import ChunkLocation, Segment


class KeywordEmbedder(Embedder):
    """One dimension per vocabulary word; unknown words are ignored."""

    vocabulary = ("alpha", "beta", "gamma", "delta", "shared")

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_query(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        words = text.lower().split()
        return [float(words.count(term)) for term in self.vocabulary]


class FailingEmbedder(KeywordEmbedder):
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        raise RuntimeError("embedding service unavailable")


def _segments(*texts: str) -> list[Segment]:
    return [
        Segment(text=text, location=ChunkLocation(line_start=n, line_end=n))
        for n, text in enumerate(texts, start=1)
    ]


def test_search_ranks_most_similar_document_first() -> None:
    index = EmbeddingIndex(HashingEmbedder())
    index.index_document("a", "a.txt", _segments("alpha beta"))
    index.index_document("b", "b.txt", _segments("gamma delta"))

    results = index.search("alpha", 5)

    assert results[0].chunk.filename == "a.txt"
    assert len(results) <= 5


def test_restricted_search_never_leaves_the_restriction() -> None:
    index = EmbeddingIndex(KeywordEmbedder())
    index.index_document("a", "a.txt", _segments("alpha beta"))
    index.index_document("b", "b.txt", _segments("gamma delta"))

    assert index.search("alpha", 5, doc_ids=["b"]) == []
    assert [hit.chunk.doc_id for hit in index.search("alpha gamma", 5, doc_ids=["b"])] == ["b"]
    assert [hit.chunk.doc_id for hit in index.search("alpha gamma", 5)] == ["a", "b"]


def test_empty_restriction_matches_nothing() -> None:
    index = EmbeddingIndex(KeywordEmbedder())
    index.index_document("a", "a.txt", _segments("alpha beta"))

    assert index.search("alpha", 5, doc_ids=[]) == []
    assert index.search("alpha", 5, doc_ids=set()) == []
    assert [hit.chunk.doc_id for hit in index.search("alpha", 5)] == ["a"]


def test_scores_are_non_increasing_and_ties_keep_insertion_order() -> None:
    index = EmbeddingIndex(KeywordEmbedder())
    index.index_document("first", "first.txt", _segments("shared alpha", "shared"))
    index.index_document("second", "second.txt", _segments("shared"))
    index.index_document("third", "third.txt", _segments("shared beta"))

    results = index.search("shared", 10)
    scores = [hit.score for hit in results]

    assert scores == sorted(scores, reverse=True)
    exact = [hit.chunk.doc_id for hit in results if hit.score == pytest.approx(1.0)]
    assert exact == ["first", "second"]
    assert len(index.search("shared", 2)) == 2


def test_delete_removes_document_and_chunks() -> None:
    index = EmbeddingIndex(KeywordEmbedder())
    index.index_document("a", "a.txt", _segments("alpha", "alpha beta"))
    index.index_document("b", "b.txt", _segments("gamma"))

    assert index.delete_document("a") is True
    assert index.delete_document("a") is False
    assert all(hit.chunk.doc_id != "a" for hit in index.search("alpha", 10))
    assert index.count_documents() == 1


def test_delete_by_filename_removes_every_match() -> None:
    index = EmbeddingIndex(KeywordEmbedder())
    index.index_document("a1", "dup.txt", _segments("alpha"))
    index.index_document("a2", "dup.txt", _segments("beta"))

    assert index.delete_document("dup.txt") is True
    assert index.count_documents() == 0


def test_embedding_failure_leaves_index_untouched() -> None:
    index = EmbeddingIndex(FailingEmbedder())

    with pytest.raises(IndexingError):
        index.index_document("a", "a.txt", _segments("alpha"))

    assert index.count_documents() == 0
    assert index.search("alpha", 5) == []


def test_invalid_top_k_and_empty_index() -> None:
    index = EmbeddingIndex(KeywordEmbedder())

    assert index.search("alpha", 5) == []
    with pytest.raises(InvalidRequestError):
        index.search("alpha", 0)


def test_transient_documents_are_not_counted_or_persisted(tmp_path) -> None:
    snapshot = tmp_path / "index.json"
    index = EmbeddingIndex(KeywordEmbedder(), snapshot)
    index.index_document("kept", "kept.txt", _segments("alpha"))
    index.index_document("transient-1", "inline.txt", _segments("beta"), transient=True)

    assert index.count_documents() == 1
    assert [hit.chunk.doc_id for hit in index.search("beta", 5, doc_ids=["transient-1"])] == [
        "transient-1"
    ]
    stored = json.loads(snapshot.read_text(encoding="utf-8"))
    assert list(stored["documents"]) == ["kept"]

    index.delete_document("transient-1")
    assert index.get("transient-1") is None


def test_snapshot_round_trip_and_clear(tmp_path) -> None:
    snapshot = tmp_path / "index.json"
    index = EmbeddingIndex(KeywordEmbedder(), snapshot)
    index.index_document("a", "a.txt", _segments("alpha", "alpha beta"))

    reloaded = EmbeddingIndex(KeywordEmbedder(), snapshot)
    assert reloaded.count_documents() == 1
    assert reloaded.get("a").chunk_count == 2
    assert reloaded.search("alpha", 1)[0].chunk.filename == "a.txt"

    reloaded.clear()
    assert reloaded.count_documents() == 0
    assert EmbeddingIndex(KeywordEmbedder(), snapshot).count_documents() == 0


def test_corrupt_snapshot_starts_empty(tmp_path) -> None:
    snapshot = tmp_path / "index.json"
    snapshot.write_text("{not json", encoding="utf-8")

    index = EmbeddingIndex(KeywordEmbedder(), snapshot)

    assert index.count_documents() == 0


def test_failed_snapshot_write_keeps_previous_state(tmp_path, monkeypatch) -> None:
    index = EmbeddingIndex(KeywordEmbedder(), tmp_path / "index.json")
    index.index_document("a", "a.txt", _segments("alpha"))

    def _boom(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr("docspace_agent.retrieval.index.os.replace", _boom)
    with pytest.raises(IndexingError):
        index.index_document("b", "b.txt", _segments("beta"))

    assert index.get("b") is None
    assert index.count_documents() == 1
    assert list(tmp_path.iterdir()) == [tmp_path / "index.json"]


def test_unrestricted_search_never_returns_transient_chunks() -> None:
    index = EmbeddingIndex(KeywordEmbedder())
    index.index_document("a", "a.txt", _segments("alpha"))
    index.index_document("transient-1", "secret.txt", _segments("alpha beta"), transient=True)

    open_hits = index.search("alpha beta", 5)

    assert [hit.chunk.doc_id for hit in open_hits] == ["a"]
    assert all(not hit.chunk.doc_id.startswith("transient-") for hit in open_hits)
    scoped = index.search("alpha beta", 5, doc_ids=["transient-1"])
    assert [hit.chunk.doc_id for hit in scoped] == ["transient-1"]


def test_delete_by_filename_spares_transient_namesake() -> None:
    index = EmbeddingIndex(KeywordEmbedder())
    index.index_document("stored", "notes.txt", _segments("alpha"))
    index.index_document("transient-1", "notes.txt", _segments("beta"), transient=True)

    assert [record.doc_id for record in index.resolve("notes.txt")] == ["stored"]
    assert index.delete_document("notes.txt") is True

    assert index.get("stored") is None
    assert index.get("transient-1") is not None
    assert index.delete_document("transient-1") is True
