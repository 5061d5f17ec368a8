"""FastAPI entrypoint for document, search, chat and session endpoints.

Run with: `uvicorn docspace_agent.api.main:create_app --factory`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from docspace_agent.agent.fallback import ExtractiveChatModel
from docspace_agent.agent.intent import IntentClassifier
from docspace_agent.agent.orchestrator import AgentOrchestrator, AgentRequest, AgentResponse
from docspace_agent.agent.registry import ToolRegistry
from docspace_agent.agent.tools import insert_text, register_builtin_tools
from docspace_agent.config import Settings
from docspace_agent.errors import DocspaceError
from docspace_agent.ingest.chunker import LineWindowChunker
from docspace_agent.ingest.embedder import Embedder, create_embedder
from docspace_agent.ingest.parser import ParserRegistry
from docspace_agent.ingest.pipeline import IngestPipeline
from docspace_agent.memory.session import SessionMemory
from docspace_agent.obs.log_config import configure_logging
from docspace_agent.retrieval.index import EmbeddingIndex
from docspace_agent.retrieval.retriever import InlineDocument, ScopedRetriever

logger = logging.getLogger(__name__)


def _create_llm(settings: Settings) -> Any:
    if not settings.model.api_key:
        return None

    from langchain_openai import ChatOpenAI

    kwargs: dict[str, Any] = {
        "model": settings.model.chat_model,
        "temperature": settings.agent.temperature,
        "max_tokens": settings.agent.max_tokens,
        "api_key": settings.model.api_key,
        "timeout": settings.model.request_timeout_seconds,
        "max_retries": 0,
    }
    if settings.model.base_url:
        kwargs["base_url"] = settings.model.base_url
    return ChatOpenAI(**kwargs)


@dataclass(slots=True)
class AppState:
    """Everything a request handler may touch; owned by one app instance."""

    settings: Settings
    index: EmbeddingIndex
    memory: SessionMemory
    pipeline: IngestPipeline
    orchestrator: AgentOrchestrator
    llm_configured: bool


class InlineDocumentModel(BaseModel):
    filename: str = Field(min_length=1)
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(min_length=1)
    document: InlineDocumentModel | None = None
    document_ids: list[str] | None = Field(default=None, alias="documentIds")
    session_id: str | None = Field(default=None, alias="sessionId")
    use_rag: bool = False


class IndexRequest(BaseModel):
    filename: str = Field(min_length=1)
    content: str = Field(min_length=1)


class BatchItem(BaseModel):
    filename: str = ""
    content: str = ""


class InsertTextRequest(BaseModel):
    filename: str = Field(min_length=1)
    text: str
    line: int
    column: int = 1


class SessionResetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(default=None, alias="sessionId")


def build_state(
    settings: Settings,
    *,
    llm: Any | None = None,
    embedder: Embedder | None = None,
) -> AppState:
    parsers = ParserRegistry(LineWindowChunker(settings.chunking))
    index = EmbeddingIndex(embedder or create_embedder(settings.model), settings.index_path)
    memory = SessionMemory(settings.memory)
    pipeline = IngestPipeline(parsers, index, settings.workspace_dir)

    registry = ToolRegistry()
    register_builtin_tools(
        registry, workspace_root=settings.workspace_dir, parsers=parsers, index=index
    )

    chat_model = llm if llm is not None else _create_llm(settings)
    orchestrator = AgentOrchestrator(
        llm=chat_model if chat_model is not None else ExtractiveChatModel(),
        tool_registry=registry,
        retriever=ScopedRetriever(index, parsers, settings.retrieval),
        memory=memory,
        classifier=IntentClassifier(),
        config=settings.agent,
    )
    return AppState(
        settings=settings,
        index=index,
        memory=memory,
        pipeline=pipeline,
        orchestrator=orchestrator,
        llm_configured=chat_model is not None,
    )


def get_state(request: Request) -> AppState:
    return request.app.state.docspace


def _session_id(header_value: str | None, body_value: str | None) -> str | None:
    return header_value or body_value or None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _chat_payload(result: AgentResponse) -> dict[str, Any]:
    return {
        "response": result.response,
        "timestamp": _now(),
        "citations": [
            {
                "filename": citation.filename,
                "docId": citation.doc_id,
                "score": citation.score,
                "textPreview": citation.text_preview,
                "page": citation.page,
                "sheet": citation.sheet,
                "lineStart": citation.line_start,
                "lineEnd": citation.line_end,
            }
            for citation in result.citations
        ],
        "toolCalls": [
            {"name": record.name, "args": record.args, "ok": record.ok}
            for record in result.tool_calls
        ],
        "createdFiles": [
            {"filename": created.filename, "docId": created.doc_id}
            for created in result.created_files
        ],
        "usedGeneralKnowledge": result.used_general_knowledge,
    }


def _agent_request(
    body: ChatRequest,
    session_header: str | None,
    *,
    use_tools: bool,
    use_retrieval: bool,
) -> AgentRequest:
    inline = (
        InlineDocument(filename=body.document.filename, content=body.document.content)
        if body.document is not None
        else None
    )
    return AgentRequest(
        message=body.message,
        session_id=_session_id(session_header, body.session_id),
        document_ids=body.document_ids or None,
        inline_document=inline,
        use_tools=use_tools,
        use_retrieval=use_retrieval,
    )


def create_app(
    settings: Settings | None = None,
    *,
    llm: Any | None = None,
    embedder: Embedder | None = None,
) -> FastAPI:
    """Build the API around one freshly constructed `AppState`."""

    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(title="Docspace Agent", version="0.1.0")
    app.state.docspace = build_state(settings, llm=llm, embedder=embedder)

    @app.exception_handler(DocspaceError)
    async def _docspace_error(_: Request, exc: DocspaceError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.get("/api/health")
    def health(state: AppState = Depends(get_state)) -> dict[str, Any]:
        return {
            "status": "ok",
            "rag_enabled": True,
            "document_count": state.index.count_documents(),
            "llm_configured": state.llm_configured,
        }

    @app.post("/api/session/reset")
    def session_reset(
        body: SessionResetRequest | None = None,
        x_session_id: str | None = Header(default=None),
        state: AppState = Depends(get_state),
    ) -> dict[str, Any]:
        session_id = _session_id(x_session_id, body.session_id if body else None)
        cleared = state.memory.clear(session_id)
        return {"status": "cleared", "existed": cleared}

    @app.post("/api/documents/upload")
    def upload(
        file: UploadFile = File(...),
        state: AppState = Depends(get_state),
    ) -> dict[str, Any]:
        data = file.file.read(state.settings.max_upload_bytes + 1)
        if len(data) > state.settings.max_upload_bytes:
            raise HTTPException(status_code=413, detail="File too large")
        result = state.pipeline.ingest_upload(file.filename or "", data)
        payload: dict[str, Any] = {
            "id": result.doc_id,
            "status": result.status,
            "filename": result.filename,
        }
        if result.warning:
            payload["warning"] = result.warning
        return payload

    @app.post("/api/documents/index")
    def index_document(body: IndexRequest, state: AppState = Depends(get_state)) -> dict[str, Any]:
        record = state.pipeline.index_text(body.filename, body.content)
        return {"id": record.doc_id, "status": "indexed", "chunks": record.chunk_count}

    @app.post("/api/documents/index-batch")
    def index_batch(
        body: list[BatchItem], state: AppState = Depends(get_state)
    ) -> dict[str, Any]:
        records = state.pipeline.index_batch((item.filename, item.content) for item in body)
        return {"count": len(records), "ids": [record.doc_id for record in records]}

    @app.get("/api/documents")
    def list_documents(state: AppState = Depends(get_state)) -> dict[str, Any]:
        return {
            "documents": [
                {"id": record.doc_id, "filename": record.filename, "chunkCount": record.chunk_count}
                for record in state.index.list_documents()
            ]
        }

    @app.get("/api/documents/search")
    def search(
        query: str = Query(min_length=1),
        top_k: int = Query(default=5, ge=1, le=50),
        state: AppState = Depends(get_state),
    ) -> dict[str, Any]:
        results = state.index.search(query, top_k)
        return {
            "results": [
                {
                    "filename": hit.chunk.filename,
                    "score": hit.score,
                    "docId": hit.chunk.doc_id,
                    "text": hit.chunk.text,
                    "page": hit.chunk.location.page,
                    "sheet": hit.chunk.location.sheet,
                    "lineStart": hit.chunk.location.line_start,
                    "lineEnd": hit.chunk.location.line_end,
                }
                for hit in results
            ]
        }

    @app.post("/api/documents/clear-all")
    def clear_all(state: AppState = Depends(get_state)) -> dict[str, Any]:
        deleted = state.pipeline.clear_all()
        return {"success": True, "deletedFiles": deleted}

    @app.post("/api/documents/insert-text")
    def insert(body: InsertTextRequest, state: AppState = Depends(get_state)) -> dict[str, Any]:
        message = insert_text(
            state.settings.workspace_dir, body.filename, body.text, body.line, body.column
        )
        return {"success": True, "message": message}

    @app.delete("/api/documents/{doc_id_or_filename}")
    def delete_document(
        doc_id_or_filename: str, state: AppState = Depends(get_state)
    ) -> dict[str, Any]:
        removed = state.pipeline.delete(doc_id_or_filename)
        return {"success": True, "docId": doc_id_or_filename, "deletedFiles": removed}

    @app.post("/api/chat")
    def chat(
        body: ChatRequest,
        x_session_id: str | None = Header(default=None),
        state: AppState = Depends(get_state),
    ) -> dict[str, Any]:
        request = _agent_request(body, x_session_id, use_tools=False, use_retrieval=body.use_rag)
        return _chat_payload(state.orchestrator.run(request))

    @app.post("/api/rag/query")
    def rag_query(
        body: ChatRequest,
        x_session_id: str | None = Header(default=None),
        state: AppState = Depends(get_state),
    ) -> dict[str, Any]:
        request = _agent_request(body, x_session_id, use_tools=False, use_retrieval=True)
        return _chat_payload(state.orchestrator.run(request))

    @app.post("/api/agent/chat")
    def agent_chat(
        body: ChatRequest,
        x_session_id: str | None = Header(default=None),
        state: AppState = Depends(get_state),
    ) -> dict[str, Any]:
        request = _agent_request(body, x_session_id, use_tools=True, use_retrieval=True)
        return _chat_payload(state.orchestrator.run(request))

    logger.info(
        "API ready: workspace=%s documents=%d llm_configured=%s",
        settings.workspace_dir,
        app.state.docspace.index.count_documents(),
        app.state.docspace.llm_configured,
    )
    return app
