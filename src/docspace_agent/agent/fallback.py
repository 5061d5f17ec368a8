"""Deterministic chat model used when no external LLM is configured."""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, SystemMessage

_SOURCE_BLOCK = re.compile(
    r"^SOURCE \d+ \[(?P<cite>[^\]]+)\]:\n(?P<body>.*?)(?=\n\nSOURCE \d+ \[|\n\n[A-Z][^\n]*\n|\Z)",
    flags=re.MULTILINE | re.DOTALL,
)


class ExtractiveChatModel:
    """Stand-in chat model that answers from the retrieved sources.

    It keeps the same `bind_tools` / `invoke` contract the orchestrator uses
    with `ChatOpenAI`, so the full agent loop runs in local/offline setups
    where `OPENAI_API_KEY` is not set. It never requests tools and always
    answers in one step, quoting the top sources with their citations.
    """

    max_snippets = 3
    snippet_chars = 280

    def bind_tools(self, tools: Sequence[Any], **kwargs: Any) -> "ExtractiveChatModel":
        del tools, kwargs  # tools are never requested.
        return self

    def invoke(self, messages: Sequence[BaseMessage], **kwargs: Any) -> AIMessage:
        del kwargs
        system_text = "\n\n".join(
            str(message.content) for message in messages if isinstance(message, SystemMessage)
        )
        citations, snippets = _parse_sources(system_text)
        return AIMessage(content=_build_answer(snippets, citations))


def _parse_sources(prompt: str) -> tuple[list[str], list[str]]:
    citations: list[str] = []
    snippets: list[str] = []
    for match in _SOURCE_BLOCK.finditer(prompt):
        citations.append(match.group("cite").strip())
        snippets.append(" ".join(match.group("body").split()))
    return citations, snippets


def _build_answer(snippets: list[str], citations: list[str]) -> str:
    if not snippets:
        return (
            "I could not find this in your workspace documents, and no language "
            "model is configured to answer from general knowledge."
        )

    lines = ["From your workspace documents:"]
    for idx, (snippet, citation) in enumerate(
        zip(snippets[: ExtractiveChatModel.max_snippets], citations, strict=False), start=1
    ):
        if len(snippet) > ExtractiveChatModel.snippet_chars:
            snippet = snippet[: ExtractiveChatModel.snippet_chars - 3] + "..."
        lines.append(f"{idx}. {snippet} [{citation}]")
    return "\n".join(lines)
