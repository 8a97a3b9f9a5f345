from __future__ import annotations

import asyncio
import logging
import re
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from .llm_service import LLMService, LLMServiceError, build_history_text
from .semantic_schema import (
    ACTION_KEYWORDS,
    DOCUMENT_KEYWORDS,
    GREETING_PATTERNS,
    PERSON_LOOKUP_PATTERNS,
    STRUCTURED_KEYWORDS,
)
from .session_store import HistoryTurn


LOGGER = logging.getLogger(__name__)


class Intent(str, Enum):
    DATABASE_QUERY = "DATABASE_QUERY"
    RAG_QUERY = "RAG_QUERY"
    GENERAL_CHAT = "GENERAL_CHAT"


INTENT_PROMPT = """You are an intent classifier for an HR and operations assistant.

Classify the user's question into EXACTLY one of these labels:
- DATABASE_QUERY: questions that need structured, row-level data from the HR/operations database (employees, attendance, salaries, leave balances, allowances, roles/permissions, transactional records).
- RAG_QUERY: questions that should be answered from documents, policies, product/service info, or knowledge-base content.
- GENERAL_CHAT: casual greetings, small talk, or generic conversation not seeking company knowledge or database facts.

Hints:
- "Who is <person>?" or "Tell me about <employee>" is DATABASE_QUERY if the name likely refers to staff.
- If unsure between DATABASE_QUERY and RAG_QUERY, prefer DATABASE_QUERY for person-specific lookups.

Return ONLY one word: DATABASE_QUERY, RAG_QUERY, or GENERAL_CHAT.

Conversation history (most recent first):
{history}"""


def _keyword_patterns(keywords: Iterable[str]) -> List[re.Pattern]:
    return [
        re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)
        for keyword in sorted(keywords)
    ]


class IntentClassifier:
    """Two-tier router: deterministic keyword rules first, a completion call only when they are inconclusive."""

    STRUCTURED_PATTERNS = _keyword_patterns(STRUCTURED_KEYWORDS)
    ACTION_PATTERNS = _keyword_patterns(ACTION_KEYWORDS)
    DOCUMENT_PATTERNS = _keyword_patterns(DOCUMENT_KEYWORDS)
    GREETING_REGEXES = [re.compile(pattern, re.IGNORECASE) for pattern in GREETING_PATTERNS]
    PERSON_LOOKUP_REGEXES = [re.compile(pattern, re.IGNORECASE) for pattern in PERSON_LOOKUP_PATTERNS]

    def __init__(self, llm_service: Optional[LLMService] = None) -> None:
        self.llm_service = llm_service

    async def classify(self, question: str, history: Sequence[HistoryTurn] = ()) -> Intent:
        text = (question or "").strip()
        intent = self.classify_by_rules(text)
        if intent is not None:
            LOGGER.debug("intent rule_tier=%s question=%r", intent.value, text[:80])
            return intent
        intent = await self._classify_with_model(text, history)
        LOGGER.debug("intent model_tier=%s question=%r", intent.value, text[:80])
        return intent

    def classify_by_rules(self, question: str) -> Optional[Intent]:
        text = (question or "").strip()
        if not text:
            return None

        if any(pattern.search(text) for pattern in self.GREETING_REGEXES):
            return Intent.GENERAL_CHAT

        has_action = self._matches(self.ACTION_PATTERNS, text)
        has_structured = self.has_structured_keyword(text)
        has_document = self._matches(self.DOCUMENT_PATTERNS, text)

        if has_action and has_structured:
            return Intent.DATABASE_QUERY
        if has_action and has_document:
            return Intent.RAG_QUERY
        if has_structured and not has_document:
            return Intent.DATABASE_QUERY
        if has_document and not has_structured:
            return Intent.RAG_QUERY
        if not has_document and self._matches(self.PERSON_LOOKUP_REGEXES, text):
            return Intent.DATABASE_QUERY
        return None

    def has_structured_keyword(self, question: str) -> bool:
        return self._matches(self.STRUCTURED_PATTERNS, question or "")

    async def _classify_with_model(self, question: str, history: Sequence[HistoryTurn]) -> Intent:
        if self.llm_service is not None:
            system_prompt = INTENT_PROMPT.format(history=build_history_text(history) or "(none)")
            try:
                raw = await asyncio.to_thread(
                    self.llm_service.complete,
                    system_prompt,
                    [{"role": "user", "content": question}],
                    0.0,
                )
            except LLMServiceError as exc:
                LOGGER.warning("Intent classification call failed, using fallback: %s", exc)
            else:
                label = self.normalize_label(raw)
                if label is not None:
                    return label
                LOGGER.info("Intent classifier returned unexpected label %r", raw)
        return self._fallback(question)

    @staticmethod
    def normalize_label(raw: Optional[str]) -> Optional[Intent]:
        normalized = (raw or "").strip().upper()
        try:
            return Intent(normalized)
        except ValueError:
            return None

    def _fallback(self, question: str) -> Intent:
        # Structured questions still go to SQL; everything else to read-only documents.
        if self.has_structured_keyword(question):
            return Intent.DATABASE_QUERY
        return Intent.RAG_QUERY

    @staticmethod
    def _matches(patterns: Iterable[re.Pattern], text: str) -> bool:
        return any(pattern.search(text) for pattern in patterns)
