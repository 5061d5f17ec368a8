"""Agent orchestrator: routing, retrieval scope and the bounded tool loop."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from docspace_agent.agent.intent import Intent, IntentClassifier
from docspace_agent.agent.prompts import FORCE_ANSWER_PROMPT, build_system_prompt
from docspace_agent.agent.registry import ToolRegistry
from docspace_agent.agent.tools import EMPTY_DIRECTORY
from docspace_agent.config import AgentConfig
from docspace_agent.errors import DocspaceError, InvalidRequestError, UpstreamModelError
from docspace_agent.memory.session import SessionMemory
from docspace_agent.obs.tracing import Timer, summarize_tool_calls
from docspace_agent.retrieval.retriever import (
    InlineDocument,
    RetrievalOutcome,
    ScopedRetriever,
)
from docspace_agent.types import Citation, CreatedFile, ToolCallRecord, Turn

logger = logging.getLogger(__name__)

_UPLOAD_PREFIX = re.compile(r"^\d+-(.+)$")
EMPTY_WORKSPACE_ANSWER = "Your workspace is empty. Upload some documents to get started!"
STEP_BUDGET_ANSWER = "I could not complete this request within the allowed number of steps."
EXTRA_TOOL_CALL_RESULT = (
    "Error: only one tool call is executed per step. Request it again in the next step."
)


class AgentState(str, Enum):
    ROUTE = "route"
    META_ANSWER = "meta_answer"
    SCOPE_RETRIEVAL = "scope_retrieval"
    TOOL_LOOP = "tool_loop"
    RESPOND = "respond"


@dataclass(slots=True)
class AgentRequest:
    message: str
    session_id: str | None = None
    document_ids: list[str] | None = None
    inline_document: InlineDocument | None = None
    use_tools: bool = True
    use_retrieval: bool = True


@dataclass(slots=True)
class AgentResponse:
    response: str
    citations: list[Citation] = field(default_factory=list)
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    created_files: list[CreatedFile] = field(default_factory=list)
    used_general_knowledge: bool = False
    state: AgentState = AgentState.RESPOND


@dataclass(slots=True)
class _LoopResult:
    answer: str
    tool_calls: list[ToolCallRecord]
    created_files: list[CreatedFile]
    steps: int
    forced: bool


class AgentOrchestrator:
    """Runs one chat turn end to end.

    ROUTE sends workspace-listing questions straight to `list_dir` and
    answers deterministically (META_ANSWER). Everything else goes through
    SCOPE_RETRIEVAL and a TOOL_LOOP of at most `max_steps` model calls, each
    either answering or requesting one tool. When the budget runs out, one
    last call without tools forces a best-effort answer. RESPOND attaches
    citations built from the retrieved passages, never from the model text.

    `llm` is any object with LangChain's `bind_tools(...)` / `invoke(messages)`
    contract (`ChatOpenAI` in production, `ExtractiveChatModel` offline).
    """

    def __init__(
        self,
        *,
        llm: Any,
        tool_registry: ToolRegistry,
        retriever: ScopedRetriever,
        memory: SessionMemory,
        classifier: IntentClassifier | None = None,
        config: AgentConfig | None = None,
    ) -> None:
        self.llm = llm
        self.tool_registry = tool_registry
        self.retriever = retriever
        self.memory = memory
        self.classifier = classifier or IntentClassifier()
        self.config = config or AgentConfig()
        self.tools = self.tool_registry.as_langchain_tools()

    def run(self, request: AgentRequest) -> AgentResponse:
        if not request.message or not request.message.strip():
            raise InvalidRequestError("message required")

        intent = self.classifier.classify(request.message)
        logger.info(
            "Routing message (meta=%s, cross_document=%s, mentioned=%s)",
            intent.is_meta_question,
            intent.has_cross_document_intent,
            sorted(intent.mentioned_document_names),
        )

        if intent.is_meta_question:
            meta = self._meta_answer()
            if meta is not None:
                self._remember(request, meta.response)
                return meta

        if request.use_retrieval:
            outcome = self.retriever.retrieve(
                request.message,
                intent,
                document_ids=request.document_ids,
                inline_document=request.inline_document,
            )
        else:
            outcome = RetrievalOutcome(results=[], has_relevant_docs=False, scope="none")

        try:
            loop = self._tool_loop(request, intent, outcome)
        finally:
            self.retriever.release(outcome)

        response = AgentResponse(
            response=loop.answer,
            citations=[Citation.from_result(result) for result in outcome.results],
            tool_calls=loop.tool_calls,
            created_files=loop.created_files,
            used_general_knowledge=not outcome.has_relevant_docs,
            state=AgentState.RESPOND,
        )
        logger.info(
            "Turn finished: scope=%s citations=%d steps=%d forced=%s tools=%s",
            outcome.scope,
            len(response.citations),
            loop.steps,
            loop.forced,
            summarize_tool_calls(loop.tool_calls),
        )
        self._remember(request, response.response)
        return response

    def _meta_answer(self) -> AgentResponse | None:
        args = {"target_directory": ".", "recursive": False}
        try:
            output = self.tool_registry.execute("list_dir", args)
        except (DocspaceError, ValueError, OSError) as exc:
            logger.warning("list_dir failed for a meta question, falling back: %s", exc)
            return None

        entries = [] if output.content == EMPTY_DIRECTORY else output.content.splitlines()
        names = sorted(_strip_upload_prefix(entry) for entry in entries if entry.strip())
        if names:
            answer = "Here are the documents in your workspace:\n\n" + "\n".join(
                f"• {name}" for name in names
            )
        else:
            answer = EMPTY_WORKSPACE_ANSWER
        return AgentResponse(
            response=answer,
            tool_calls=[ToolCallRecord(name="list_dir", args=args)],
            state=AgentState.META_ANSWER,
        )

    def _tool_loop(
        self, request: AgentRequest, intent: Intent, outcome: RetrievalOutcome
    ) -> _LoopResult:
        system_prompt = build_system_prompt(
            retrieved=outcome.results,
            has_relevant_docs=outcome.has_relevant_docs,
            active_document=self._active_document(request, outcome),
            mentioned_documents=intent.mentioned_document_names,
        )
        messages: list[BaseMessage] = [SystemMessage(content=system_prompt)]
        for turn in self.memory.recent(request.session_id):
            if turn.role == "user":
                messages.append(HumanMessage(content=turn.content))
            else:
                messages.append(AIMessage(content=turn.content))
        messages.append(HumanMessage(content=request.message))

        records: list[ToolCallRecord] = []
        created: list[CreatedFile] = []
        use_tools = request.use_tools and bool(self.tools)
        model = self.llm.bind_tools(self.tools) if use_tools else self.llm
        max_steps = self.config.max_steps if use_tools else 1

        step = 0
        while step < max_steps:
            step += 1
            reply = self._call_model(model, messages)
            messages.append(reply)
            tool_calls = list(getattr(reply, "tool_calls", None) or [])
            if not use_tools or not tool_calls:
                return _LoopResult(_message_text(reply), records, created, step, False)

            first, *extra = tool_calls
            messages.append(self._execute_tool(first, step, records, created))
            for position, call in enumerate(extra, start=1):
                messages.append(
                    ToolMessage(
                        content=EXTRA_TOOL_CALL_RESULT,
                        tool_call_id=call.get("id") or f"call-{step}-{position}",
                        name=str(call.get("name", "unknown")),
                    )
                )

        logger.warning("Step budget of %d exhausted, forcing an answer", max_steps)
        messages.append(HumanMessage(content=FORCE_ANSWER_PROMPT))
        final_model = self.llm.bind_tools(self.tools, tool_choice="none")
        reply = self._call_model(final_model, messages)
        answer = _message_text(reply) or STEP_BUDGET_ANSWER
        return _LoopResult(answer, records, created, step, True)

    def _execute_tool(
        self,
        call: dict[str, Any],
        step: int,
        records: list[ToolCallRecord],
        created: list[CreatedFile],
    ) -> ToolMessage:
        name = str(call.get("name", ""))
        args = dict(call.get("args") or {})
        record = ToolCallRecord(name=name, args=args)
        with Timer() as timer:
            try:
                output = self.tool_registry.execute(name, args)
                content = output.content
                created.extend(output.created_files)
            except (DocspaceError, ValueError, OSError) as exc:
                # Tool failures are results for the model, not request failures.
                record.ok = False
                content = f"Error: {exc}"
                logger.info("Tool %s failed at step %d: %s", name, step, exc)
        record.latency_ms = timer.elapsed_ms
        records.append(record)

        limit = self.config.max_tool_output_chars
        if len(content) > limit:
            content = content[:limit] + "\n[output truncated]"
        return ToolMessage(
            content=content,
            tool_call_id=call.get("id") or f"call-{step}",
            name=name,
        )

    def _call_model(self, model: Any, messages: list[BaseMessage]) -> AIMessage:
        try:
            with Timer() as timer:
                reply = model.invoke(messages)
        except Exception as exc:
            logger.error("Language model call failed: %s", exc)
            raise UpstreamModelError(f"Language model call failed: {exc}") from exc
        logger.debug("Model call took %.1f ms", timer.elapsed_ms)
        if isinstance(reply, AIMessage):
            return reply
        return AIMessage(content=_message_text(reply))

    def _active_document(self, request: AgentRequest, outcome: RetrievalOutcome) -> str | None:
        if outcome.results:
            return outcome.results[0].chunk.filename
        if request.inline_document is not None:
            return request.inline_document.filename
        for doc_id in outcome.restricted_to:
            record = self.retriever.index.get(doc_id)
            if record is not None:
                return record.filename
        return None

    def _remember(self, request: AgentRequest, answer: str) -> None:
        self.memory.append(
            request.session_id,
            Turn(role="user", content=request.message),
            Turn(role="assistant", content=answer),
        )


def _strip_upload_prefix(name: str) -> str:
    match = _UPLOAD_PREFIX.match(name)
    return match.group(1) if match else name


def _message_text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                if "text" in item:
                    parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()
    return str(content or "").strip()
