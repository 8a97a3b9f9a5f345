from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .llm_service import LLMService
from .metrics import MetricsTracker
from .pagination import PaginationDirection, detect_pagination_direction, next_offset
from .query_classifier import Intent, IntentClassifier
from .session_store import HistoryTurn, QueryDescriptor, Session, SessionStore
from .sql_guard import DEFAULT_LIMIT, is_aggregate_count, parse_limit
from .sql_service import SQLService


LOGGER = logging.getLogger(__name__)

DATABASE_PREFIX = "This answer is based on live HR database records."
PAGINATED_DATABASE_PREFIX = "This answer is based on live HR database records (paginated results)."
RAG_PREFIX = "This answer is based on company documents and knowledge-base content."
GENERAL_PREFIX = "This is a general conversational response and does not use internal company data."

GENERAL_GREETING = "Hi there! How can I help you today?"
NO_PREVIOUS_RESULTS_ANSWER = (
    "I don't have any earlier database results to navigate. Please ask a data question first."
)
AGGREGATE_NOT_PAGINATED_ANSWER = (
    "The previous result is a single aggregate count, so there are no further pages to show."
)

SOURCE_DATABASE = "database"
SOURCE_RAG = "rag"
SOURCE_GENERAL = "general"


class Retriever(Protocol):
    def retrieve(self, question: str) -> List[Dict[str, Any]]:
        ...


@dataclass
class RoutedAnswer:
    answer: str
    intent: Intent
    source: str
    sql: Optional[str] = None
    rows: Optional[List[Dict[str, Any]]] = None


def with_prefix(prefix: str, answer: Optional[str]) -> str:
    return f"{prefix}\n\n{answer}" if answer else prefix


def build_general_chat_answer(question: str) -> str:
    trimmed = (question or "").strip()
    if not trimmed:
        return GENERAL_GREETING
    return f"{GENERAL_GREETING} (You said: {trimmed})"


class QuestionRouter:
    """Routes each question to pagination, the database, documents or a canned reply."""

    def __init__(
        self,
        session_store: SessionStore,
        classifier: IntentClassifier,
        sql_service: SQLService,
        retriever: Retriever,
        llm_service: LLMService,
        metrics: Optional[MetricsTracker] = None,
        default_limit: int = DEFAULT_LIMIT,
    ) -> None:
        self.session_store = session_store
        self.classifier = classifier
        self.sql_service = sql_service
        self.retriever = retriever
        self.llm_service = llm_service
        self.metrics = metrics
        self.default_limit = default_limit

    async def route(self, question: str, session_id: Optional[str] = None) -> RoutedAnswer:
        trimmed = (question or "").strip()
        session = self.session_store.get_or_create(session_id)
        prior_history = list(self.session_store.history(session))
        if trimmed:
            self.session_store.append_history(session, "user", trimmed)

        direction = detect_pagination_direction(trimmed)
        if direction is not None:
            result = await self._paginate(session, direction)
        else:
            intent = await self.classifier.classify(trimmed, self.session_store.history(session))
            if intent == Intent.DATABASE_QUERY:
                result = await self._answer_from_database(session, trimmed, prior_history)
            elif intent == Intent.RAG_QUERY:
                result = await self._answer_from_documents(trimmed, prior_history)
            else:
                result = RoutedAnswer(
                    answer=with_prefix(GENERAL_PREFIX, build_general_chat_answer(trimmed)),
                    intent=Intent.GENERAL_CHAT,
                    source=SOURCE_GENERAL,
                )

        self.session_store.append_history(session, "assistant", result.answer)
        if self.metrics is not None:
            self.metrics.record(result.intent.value, result.source)
        LOGGER.info(
            "chat_request session=%s intent=%s source=%s paginated=%s",
            session.key or "-",
            result.intent.value,
            result.source,
            direction is not None,
        )
        return result

    async def _paginate(self, session: Session, direction: PaginationDirection) -> RoutedAnswer:
        descriptor = self.session_store.get_last_query(session)
        if descriptor is None:
            return RoutedAnswer(
                answer=NO_PREVIOUS_RESULTS_ANSWER,
                intent=Intent.GENERAL_CHAT,
                source=SOURCE_GENERAL,
            )

        if is_aggregate_count(descriptor.sql):
            return RoutedAnswer(
                answer=with_prefix(PAGINATED_DATABASE_PREFIX, AGGREGATE_NOT_PAGINATED_ANSWER),
                intent=Intent.DATABASE_QUERY,
                source=SOURCE_DATABASE,
                sql=descriptor.sql,
                rows=[],
            )

        offset = next_offset(descriptor, direction)
        page = await self.sql_service.run_page(descriptor, offset, descriptor.limit)
        if page.succeeded:
            self.session_store.set_last_query(
                session,
                QueryDescriptor(
                    sql=page.sql,
                    original_question=descriptor.original_question,
                    offset=offset,
                    limit=descriptor.limit,
                    params=page.params,
                ),
            )
        return RoutedAnswer(
            answer=with_prefix(PAGINATED_DATABASE_PREFIX, page.answer),
            intent=Intent.DATABASE_QUERY,
            source=SOURCE_DATABASE,
            sql=page.sql,
            rows=page.rows,
        )

    async def _answer_from_database(
        self,
        session: Session,
        question: str,
        history: Sequence[HistoryTurn],
    ) -> RoutedAnswer:
        result = await self.sql_service.run(question, history)
        if result.succeeded:
            self.session_store.set_last_query(
                session,
                QueryDescriptor(
                    sql=result.sql,
                    original_question=question,
                    offset=0,
                    limit=parse_limit(result.sql, self.default_limit),
                    params=result.params,
                ),
            )
        return RoutedAnswer(
            answer=with_prefix(DATABASE_PREFIX, result.answer),
            intent=Intent.DATABASE_QUERY,
            source=SOURCE_DATABASE,
            sql=result.sql,
            rows=result.rows,
        )

    async def _answer_from_documents(self, question: str, history: Sequence[HistoryTurn]) -> RoutedAnswer:
        documents: List[Dict[str, Any]] = []
        if question:
            try:
                documents = await asyncio.to_thread(self.retriever.retrieve, question)
            except Exception as exc:  # retrieval backends raise their own error types
                LOGGER.warning("Retrieval failed, answering without context: %s", exc)
                documents = []
        answer = await asyncio.to_thread(
            self.llm_service.answer_from_documents,
            question,
            documents or [],
            history,
        )
        return RoutedAnswer(
            answer=with_prefix(RAG_PREFIX, answer),
            intent=Intent.RAG_QUERY,
            source=SOURCE_RAG,
        )
