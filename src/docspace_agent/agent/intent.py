"""Pattern-based intent heuristics for routing chat messages."""

from __future__ import annotations

import re
from dataclasses import dataclass

_EXTENSIONS = r"(?:pdf|docx|txt|tex|md|xlsx)"

_META_PATTERNS = tuple(
    re.compile(pattern, flags=re.IGNORECASE)
    for pattern in (
        r"what (?:files|documents|files and folders) (?:do i have|are in|are there)",
        r"list (?:all )?(?:my )?(?:files|documents|files and folders)",
        r"show me (?:all )?(?:my )?(?:files|documents|files and folders)",
        r"what['’]?s in (?:my )?(?:workspace|folder|directory)",
        r"(?:list|show|what) (?:all )?files",
    )
)

# Phrases that point at documents other than the one in focus. A capture
# group, when present, holds the referenced name.
_CROSS_DOCUMENT_PATTERNS = (
    re.compile(r"\bbased on (?:the )?(?:documents?|files?)\b", flags=re.IGNORECASE),
    re.compile(
        r"\b(?:other|another|different|both) (?:documents?|files?)\b", flags=re.IGNORECASE
    ),
    re.compile(
        r"\b(?:document|file|pdf|paper)\s+[\"'“‘]([^\"'”’]+)[\"'”’]", flags=re.IGNORECASE
    ),
    re.compile(
        r"\b(?:document|file)\s+([\w\-]+(?:\.[\w\-]+)*\." + _EXTENSIONS + r")\b",
        flags=re.IGNORECASE,
    ),
    # "from document Budget2024": unquoted names must start upper-case or with a digit.
    re.compile(r"\b(?:[Ff]rom|[Ii]n) (?:[Dd]ocument|[Ff]ile) ([A-Z0-9][\w\-]*)"),
)

_BARE_FILENAME = re.compile(
    r"\b([\w\-]+(?:\.[\w\-]+)*\." + _EXTENSIONS + r")\b", flags=re.IGNORECASE
)


@dataclass(frozen=True, slots=True)
class Intent:
    is_meta_question: bool
    mentioned_document_names: frozenset[str]
    has_cross_document_intent: bool

    @property
    def widens_scope(self) -> bool:
        return self.has_cross_document_intent or bool(self.mentioned_document_names)


class IntentClassifier:
    """Best-effort routing heuristics; misses and false alarms are expected.

    Meta questions ("what files do I have") are answered by listing the
    workspace. Cross-document phrasing ("based on the document report.pdf")
    widens retrieval beyond an explicit document restriction.
    """

    def classify(self, message: str) -> Intent:
        is_meta = any(pattern.search(message) for pattern in _META_PATTERNS)

        names: set[str] = set()
        cross_document = False
        for pattern in _CROSS_DOCUMENT_PATTERNS:
            for match in pattern.finditer(message):
                cross_document = True
                if match.groups() and match.group(1):
                    names.add(match.group(1).strip().lower())

        for match in _BARE_FILENAME.finditer(message):
            names.add(match.group(1).lower())

        return Intent(
            is_meta_question=is_meta,
            mentioned_document_names=frozenset(names),
            has_cross_document_intent=cross_document,
        )
