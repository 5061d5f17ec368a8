"""Document workspace agent package."""

from .config import Settings
from .retrieval.index import EmbeddingIndex

__all__ = ["EmbeddingIndex", "Settings"]
