"""
Rule-based memory capture from user text.

Recognizes statements like "remember that ...", "I am the founder of ...",
"my timezone is ..." and "I prefer ...". Compound messages are split on
connective phrases so each clause yields its own candidate.
"""

import re
from typing import Callable, List, Optional, Pattern, Tuple

from ..models.memory import MemoryCandidate, MemoryCategory

_LEADING_AGENT_NAME = re.compile(r"^(?!(?:actually|correction)\b)[a-z][a-z0-9_-]{1,30}\s*[,:]\s*", re.IGNORECASE)
_TRAILING_PUNCTUATION = re.compile(r"[.!?]+$")
_STATEMENT_SEPARATORS = re.compile(r"[.;\n]+")
_GENERIC_OPENERS = re.compile(r"^(?:i\s|my\s|our\s)", re.IGNORECASE)

# Connectives that start a new statement inside a single sentence
_CONNECTIVES = [
    (re.compile(r"\bI also\b", re.IGNORECASE), ". I also"),
    (re.compile(r"\bI am also\b", re.IGNORECASE), ". I am also"),
    (re.compile(r"\bI handle\b", re.IGNORECASE), ". I handle"),
    (re.compile(r"\bI work\b", re.IGNORECASE), ". I work"),
    (re.compile(r"\band also\b", re.IGNORECASE), ". also"),
]


def normalize_sentence(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def _first_words(value: str, count: int) -> List[str]:
    return value.split(" ")[:count]


def _fact(content: str, hints: List[str]) -> MemoryCandidate:
    return MemoryCandidate(category=MemoryCategory.FACT, content=content, conflict_hints=hints)


def _timezone(value: str) -> MemoryCandidate:
    return _fact(f"User timezone is {value}", ["timezone"])


def _company(value: str) -> MemoryCandidate:
    return _fact(f"User company name is {value}", ["company"])


def _founder(value: str) -> MemoryCandidate:
    return _fact(f"User is the founder of {value}", ["founder", "company"])


def _role(value: str) -> MemoryCandidate:
    return _fact(f"User is {value}", _first_words(value, 3))


def _work(value: str) -> MemoryCandidate:
    return _fact(f"User works {value}", ["work", "role"])


def _handles(value: str) -> MemoryCandidate:
    return _fact(f"User handles {value}", ["responsibility"])


def _preference(value: str) -> MemoryCandidate:
    return MemoryCandidate(
        category=MemoryCategory.PREFERENCE,
        content=f"User prefers {value}",
        conflict_hints=[value.split(" ")[0] or "preference"],
    )


def _correction(value: str) -> MemoryCandidate:
    return MemoryCandidate(
        category=MemoryCategory.CORRECTION,
        content=f"User correction: {value}",
        conflict_hints=["correction"],
    )


def _remember(value: str) -> MemoryCandidate:
    return _fact(f"User says: {value}", _first_words(value, 2))


# First match wins; order matters (founder before the generic "I am")
STATEMENT_PATTERNS: List[Tuple[Pattern, Callable[[str], MemoryCandidate]]] = [
    (re.compile(r"(?:my\s+timezone\s+is|i(?:\s*am|')\s+in\s+timezone)\s+(.+)", re.IGNORECASE), _timezone),
    (re.compile(r"(?:my\s+company\s+is|our\s+company\s+is|company\s+name\s+is)\s+(.+)", re.IGNORECASE), _company),
    (re.compile(r"i\s+am\s+the\s+founder\s+of\s+(.+)", re.IGNORECASE), _founder),
    (re.compile(r"i\s+am\s+(?:also\s+)?(.+)", re.IGNORECASE), _role),
    (re.compile(r"i\s+(?:also\s+)?work\s+(.+)", re.IGNORECASE), _work),
    (re.compile(r"i\s+handle\s+(.+)", re.IGNORECASE), _handles),
    (re.compile(r"(?:i\s+prefer|remember\s+that\s+i\s+prefer)\s+(.+)", re.IGNORECASE), _preference),
    (re.compile(r"(?:that's\s+wrong|not\s+true|correction:?|actually,)\s+(.+)", re.IGNORECASE), _correction),
    (re.compile(r"(?:remember\s+that|don't\s+forget\s+that|dont\s+forget\s+that)\s+(.+)", re.IGNORECASE), _remember),
]


def strip_agent_name(text: str) -> str:
    """Drop a leading "Name," or "Name:" addressed to the assistant."""
    return _LEADING_AGENT_NAME.sub("", text, count=1).strip()


def split_statements(text: str) -> List[str]:
    for pattern, replacement in _CONNECTIVES:
        text = pattern.sub(replacement, text)
    parts = (normalize_sentence(part) for part in _STATEMENT_SEPARATORS.split(text))
    return [part for part in parts if part]


def _match_statement(statement: str) -> Optional[MemoryCandidate]:
    """A matched pattern with an empty capture yields no candidate."""
    for pattern, build in STATEMENT_PATTERNS:
        match = pattern.search(statement)
        if not match:
            continue
        value = normalize_sentence(_TRAILING_PUNCTUATION.sub("", match.group(1)))
        return build(value) if value else None
    return None


def detect_explicit_memories(message: str) -> List[MemoryCandidate]:
    """Extract memory candidates from a user message, in statement order."""
    text = normalize_sentence(message or "")
    if not text:
        return []

    cleaned = strip_agent_name(text)
    results: List[MemoryCandidate] = []
    for statement in split_statements(cleaned):
        candidate = _match_statement(statement)
        if candidate is not None:
            results.append(candidate)

    if results:
        return results

    if cleaned and _GENERIC_OPENERS.match(cleaned):
        return [_fact(f"User says: {cleaned}", _first_words(cleaned, 2))]
    return []


def detect_explicit_memory(message: str) -> Optional[MemoryCandidate]:
    candidates = detect_explicit_memories(message)
    return candidates[0] if candidates else None
