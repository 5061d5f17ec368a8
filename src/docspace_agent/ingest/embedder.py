"""Text embedders used by the index: a local hashing model and OpenAI."""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from collections import Counter
from hashlib import blake2b
from typing import Any

from docspace_agent.config import ModelConfig

_WORD_PATTERN = re.compile(r"\w+", flags=re.UNICODE)


class Embedder(ABC):
    """Turns text into fixed-length vectors; the index never looks inside."""

    @abstractmethod
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Vectors for chunk texts, in input order."""

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Vector for a search query."""


def _bucket(token: str, dimension: int) -> tuple[int, float]:
    digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
    position = int.from_bytes(digest[:4], "little") % dimension
    return position, (-1.0 if digest[4] & 1 else 1.0)


class HashingEmbedder(Embedder):
    """Feature-hashed bag of words; deterministic and offline.

    Lowercased word counts are damped to `1 + log(count)` so a term repeated
    across a long chunk does not drown out the rest, hashed into `dimension`
    signed buckets and L2-normalised. Texts sharing vocabulary score high
    under cosine similarity, which is all local setups and the tests need.
    `DOCSPACE_EMBEDDER=openai` switches to a hosted model.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._vectorize(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._vectorize(text)

    def _vectorize(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        counts = Counter(_WORD_PATTERN.findall(text.lower()))
        for token, count in counts.items():
            position, sign = _bucket(token, self.dimension)
            vector[position] += sign * (1.0 + math.log(count))

        length = math.sqrt(sum(value * value for value in vector))
        if length == 0.0:
            return vector
        return [value / length for value in vector]


class OpenAIEmbedder(Embedder):
    """Adapter over `langchain_openai.OpenAIEmbeddings`."""

    def __init__(self, config: ModelConfig) -> None:
        from langchain_openai import OpenAIEmbeddings

        kwargs: dict[str, Any] = {"model": config.embedding_model}
        if config.api_key:
            kwargs["api_key"] = config.api_key
        if config.base_url:
            kwargs["base_url"] = config.base_url
        self._client = OpenAIEmbeddings(**kwargs)

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return self._client.embed_documents(texts)

    def embed_query(self, text: str) -> list[float]:
        return self._client.embed_query(text)


def create_embedder(config: ModelConfig) -> Embedder:
    if config.embedder == "openai":
        return OpenAIEmbedder(config)
    return HashingEmbedder(dimension=config.embedding_dimension)
