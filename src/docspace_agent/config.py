"""Configuration models for the document workspace agent."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class ChunkingConfig(BaseModel):
    """Configures line-window chunking of parsed text."""

    max_chars: int = Field(default=800, ge=50)
    overlap_lines: int = Field(default=2, ge=0)


class RetrievalConfig(BaseModel):
    """Configures retrieval scope heuristics."""

    final_k: int = Field(default=5, ge=1)
    open_candidates_k: int = Field(default=10, ge=1)
    relevance_threshold: float = Field(default=0.3, ge=-1.0, le=1.0)
    fallback_k: int = Field(default=3, ge=1)
    min_inline_chars: int = Field(default=30, ge=0)
    inline_placeholder_prefix: str = "[Uploaded file:"


class AgentConfig(BaseModel):
    """Configures the tool-calling loop."""

    max_steps: int = Field(default=10, ge=1)
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1200, ge=1)
    max_tool_output_chars: int = Field(default=12000, ge=100)


class MemoryConfig(BaseModel):
    """Configures per-session conversation memory."""

    retention_turns: int = Field(default=20, ge=2)
    prompt_turns: int = Field(default=6, ge=0)


class ModelConfig(BaseModel):
    """Configures the chat and embedding providers."""

    api_key: str | None = None
    chat_model: str = "gpt-4o-mini"
    base_url: str | None = None
    embedder: str = Field(default="hashing", pattern="^(hashing|openai)$")
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = Field(default=256, ge=8)
    request_timeout_seconds: float = Field(default=60.0, gt=0.0)


class Settings(BaseModel):
    """Top-level settings shared by the API and the agent."""

    data_dir: Path = Path("data")
    log_level: str = "INFO"
    max_upload_bytes: int = Field(default=50 * 1024 * 1024, ge=1)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)

    @property
    def workspace_dir(self) -> Path:
        return self.data_dir / "uploads"

    @property
    def index_path(self) -> Path:
        return self.data_dir / "index.json"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and a `.env` file)."""
        load_dotenv()
        model = ModelConfig(
            api_key=os.getenv("OPENAI_API_KEY") or None,
            chat_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            base_url=os.getenv("OPENAI_BASE_URL") or None,
            embedder=os.getenv("DOCSPACE_EMBEDDER", "hashing"),
        )
        return cls(
            data_dir=Path(os.getenv("DOCSPACE_DATA_DIR", "data")),
            log_level=os.getenv("DOCSPACE_LOG_LEVEL", "INFO").upper(),
            agent=AgentConfig(max_steps=int(os.getenv("DOCSPACE_MAX_STEPS", "10"))),
            memory=MemoryConfig(
                retention_turns=int(os.getenv("DOCSPACE_MEMORY_TURNS", "20"))
            ),
            model=model,
        )
