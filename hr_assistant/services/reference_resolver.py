from __future__ import annotations

import re
from typing import Optional, Sequence, Tuple

from .session_store import HistoryTurn


CONTEXT_KEYWORDS: Tuple[str, ...] = (
    "attendance",
    "leave",
    "salary",
    "contact",
    "details",
    "info",
    "profile",
)

PRONOUN_PATTERN = re.compile(
    r"\b(his|her|their|him|them)\b|\b(that|this)\s+(employee|person)\b",
    re.IGNORECASE,
)

PERSON_NAME_PATTERN = re.compile(r"\b[A-Z][a-zA-Z.'-]+\s+[A-Z][a-zA-Z.'-]+\b")

# Words that end a name, as in "who is Hamid Khan in sales".
STOP_WORDS = r"(?!(?:in|from|at|of|on|with|for|and|or|is|was|the|to|by|who|what|does|do)\b)"

# Up to four words, e.g. "Hamid Ali Khan".
NAME_WORDS = (
    r"(" + STOP_WORDS + r"[a-zA-Z][a-zA-Z.'-]*"
    r"(?:\s+" + STOP_WORDS + r"[a-zA-Z][a-zA-Z.'-]*){0,3})"
)

# Tried in order against each history turn, newest turn first.
NAME_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"\bwho\s+is\s+" + NAME_WORDS, re.IGNORECASE),
    re.compile(r"\babout\s+" + NAME_WORDS, re.IGNORECASE),
    re.compile(r"\b([A-Z][a-zA-Z.'-]+\s+[A-Z][a-zA-Z.'-]+)\s+is\b"),
)


def question_has_person_name(question: str) -> bool:
    return bool(PERSON_NAME_PATTERN.search(question or ""))


def needs_context(question: str) -> bool:
    lowered = (question or "").lower()
    if not lowered:
        return False
    if any(keyword in lowered for keyword in CONTEXT_KEYWORDS):
        return True
    return bool(PRONOUN_PATTERN.search(lowered))


def extract_recent_name(history: Sequence[HistoryTurn]) -> Optional[str]:
    for turn in reversed(list(history)):
        text = (turn.content or "").strip()
        if not text:
            continue
        for pattern in NAME_PATTERNS:
            match = pattern.search(text)
            if match:
                return match.group(1).strip().rstrip("?.!").strip()
    return None


def resolve_reference(question: str, history: Sequence[HistoryTurn]) -> str:
    """Append the most recently mentioned person to a follow-up that lacks a name.

    Returns the question unchanged when it already names someone, has no
    context trigger, or no name can be recovered from the history.
    """
    text = question or ""
    if question_has_person_name(text) or not needs_context(text):
        return text
    name = extract_recent_name(history)
    if not name:
        return text
    return f"{text} for {name}"
