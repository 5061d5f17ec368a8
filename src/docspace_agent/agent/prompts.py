"""System prompt construction for agent turns."""

from __future__ import annotations

from collections.abc import Collection, Sequence

from docspace_agent.types import SearchResult

_BASE_PROMPT = """
You are a helpful AI assistant with access to a document workspace.

Workspace: all user documents live in one uploads directory. Use relative
paths (e.g. "report.pdf", "notes/todo.txt") when calling tools. Stored file
names may carry a numeric upload prefix such as "1762428737786-report.pdf".

Tools:
- list_dir: list files and folders in the workspace
- extract_document: full text of a PDF, DOCX or TXT document
- read_file: raw text of a workspace file
- grep_files: find files whose content matches a pattern
- insert_text: insert text at a line/column (only after the user approves an edit)
- create_latex_file: create a new LaTeX article skeleton

Call at most one tool per step. Cite sources as [filename lines X-Y],
adding the page (pN) or sheet (sheet:Name) when the source has one.
""".strip()

GROUNDED_RULES = """
Answer ONLY from the sources provided above or from tool results.
If the answer is not contained in them, say that you do not know.
Never invent file names, quotes or citations.
""".strip()

GENERAL_KNOWLEDGE_NOTE = """
No relevant documents were found in the workspace for this question.
You may answer from general knowledge. Clearly state that the answer is
not based on the workspace documents.
""".strip()

FORCE_ANSWER_PROMPT = """
The step budget for tool use is exhausted. Do not call any more tools.
Give the best answer you can from the context gathered so far, and say
plainly if parts of the question remain unanswered.
""".strip()


def format_sources(results: Sequence[SearchResult]) -> str:
    return "\n\n".join(
        f"SOURCE {position} [{result.citation_label()}]:\n{result.chunk.text}"
        for position, result in enumerate(results, start=1)
    )


def build_system_prompt(
    *,
    retrieved: Sequence[SearchResult],
    has_relevant_docs: bool,
    active_document: str | None = None,
    mentioned_documents: Collection[str] = (),
) -> str:
    """Assemble the system prompt for one non-meta turn.

    The grounded-answer rules are always present unless retrieval found
    nothing relevant, in which case a general-knowledge answer is allowed.
    """

    sections = [_BASE_PROMPT]

    if active_document:
        sections.append(
            f'The user is currently looking at "{active_document}". "This document" '
            "refers to it, but if the user names OTHER documents, read those too."
        )

    if mentioned_documents:
        names = ", ".join(sorted(mentioned_documents))
        sections.append(
            f"The user mentioned these documents: {names}. Use list_dir to find their "
            "exact file names, then extract_document to read them."
        )

    if retrieved:
        unique_files = list(dict.fromkeys(result.chunk.filename for result in retrieved))
        sections.append(
            f"Retrieved content from {len(unique_files)} workspace document(s):\n\n"
            + format_sources(retrieved)
        )

    if has_relevant_docs:
        sections.append(GROUNDED_RULES)
    else:
        sections.append(GENERAL_KNOWLEDGE_NOTE)

    return "\n\n".join(sections)
