from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .answer_formatter import AnswerFormatter, RowEnricher
from .database import QueryExecutor, SQLExecutionError
from .llm_service import LLMService, LLMServiceError
from .reference_resolver import resolve_reference
from .semantic_schema import COLUMN_HINTS, JOIN_GUIDANCE, SEMANTIC_SCHEMA
from .session_store import HistoryTurn, QueryDescriptor
from .sql_guard import (
    SQLGenerationError,
    SQLGuard,
    UnsafeQueryError,
    apply_limit_offset,
    strip_markdown,
)


LOGGER = logging.getLogger(__name__)

GENERATION_FAILED_ANSWER = (
    "I couldn't generate a safe database query for that request. Please rephrase or narrow the question."
)
EXECUTION_FAILED_ANSWER = (
    "I couldn't run that database query safely. Please adjust the question or try a simpler one."
)
PAGE_REUSE_FAILED_ANSWER = (
    "I couldn't reuse the previous database query for pagination. Please ask your data question again."
)
PAGE_EXECUTION_FAILED_ANSWER = (
    "I couldn't fetch the next set of database results safely. Please try again or adjust the request."
)

SQL_PROMPT = """You are a DuckDB text-to-SQL assistant for an HR and operations database.

You have access to the following semantic database schema.
Use ONLY the tables, columns, and joins defined below.
Never guess column names.

{semantic_schema}

Use ONLY these tables: {table_list}.
{join_guidance}

{column_hints}

Rules:
- SELECT statements only. Do not modify data.
- Prefer concise projections over SELECT *.
- If counting/aggregating, omit LIMIT. Otherwise add LIMIT {default_limit}.
- Keep joins minimal and aligned to the join rules above.
- Never return only ID columns unless the user explicitly asks only for IDs; include descriptive fields (name, email, status, date, amount).
- For a specific employee include employee_name and relevant contact/role fields (personal_contact_number, emergency_contact_number, personal_email, office_email, department, designation).
- For attendances include date, status, reason and attendance_device_id.
- For leave balances include year, leave_type_id AS category_id and remaining_leaves; join leave_types to return leave_types.leave_name AS category_name.
- For activity_logs include module, action, record_id, created_at and user_id.

Default "list all" behaviour (no filters provided):
- employees: id, employee_name, office_email, department, designation, is_active
- attendances: id, employee_id, attendance_device_id, date, status
- employee_leaves: employee_id, year, leave_type_id AS category_id, remaining_leaves
- roles/permissions: roles.role_name, permissions.module, permissions.permission, permissions.route
- Always include LIMIT {default_limit} for these list-all queries.

Name matching:
- Users may provide partial or slightly misspelled names; match with LOWER(employees.employee_name) LIKE '%name%'.
- If both a name and an attendance_device_id are given, prefer attendance_device_id.

Return ONLY the SQL statement and nothing else."""

LEAVE_TYPE_PATTERN = re.compile(r"\b(casual|sick|annual|earned|unpaid|paid)\s+leaves?\b", re.IGNORECASE)
NAME_SUFFIX_PATTERN = re.compile(r"\b(?:of|for)\s+([a-zA-Z][a-zA-Z\s.'-]*)$", re.IGNORECASE)
REMAINING_LEAVES_PATTERN = re.compile(
    r"\b(?:how many|remaining|balance|left)\b.*\bleaves?\b|\bleaves?\b.*\b(?:remaining|left|balance)\b",
    re.IGNORECASE,
)
ACTIVITY_LOG_PATTERN = re.compile(r"\b(?:activity|audit|system)\s+logs?\b", re.IGNORECASE)
COUNT_WORDS_PATTERN = re.compile(r"\b(?:how many|count|number of|total number)\b", re.IGNORECASE)
NON_NAME_WORDS = {
    "all", "every", "each", "the", "my", "our", "this", "that", "me", "us", "everyone",
    "employee", "employees", "staff", "team", "people", "users", "department", "departments",
}
# Words that add a filter the templates cannot express, such as a department.
QUALIFIER_WORDS = {
    "in", "from", "with", "at", "on", "under", "by", "during", "since", "between", "who", "whose", "where", "which",
}

LEAVE_BALANCE_SQL = (
    "SELECT employees.employee_name, leave_types.leave_name AS category_name, "
    "employee_leaves.leave_type_id AS category_id, employee_leaves.remaining_leaves, "
    "employee_leaves.total_leaves, employee_leaves.year "
    "FROM employee_leaves "
    "JOIN employees ON employee_leaves.employee_id = employees.id "
    "JOIN leave_types ON employee_leaves.leave_type_id = leave_types.id"
)
ACTIVITY_LOG_SQL = (
    "SELECT user_id, module, action, record_id, created_at "
    "FROM activity_logs ORDER BY created_at DESC"
)


@dataclass(frozen=True)
class SQLCandidate:
    sql: str
    params: Tuple[Any, ...] = ()


@dataclass
class DatabaseResult:
    answer: str
    sql: str = ""
    params: Tuple[Any, ...] = ()
    rows: List[Dict[str, Any]] = field(default_factory=list)
    succeeded: bool = False


class SQLService:
    """Turns questions into gated SQL, executes it and explains the rows."""

    def __init__(
        self,
        executor: QueryExecutor,
        llm_service: Optional[LLMService] = None,
        guard: Optional[SQLGuard] = None,
        formatter: Optional[AnswerFormatter] = None,
        enricher: Optional[RowEnricher] = None,
    ) -> None:
        self.executor = executor
        self.llm_service = llm_service
        self.guard = guard or SQLGuard()
        self.formatter = formatter or AnswerFormatter(llm_service)
        self.enricher = enricher or RowEnricher(executor)

    def available_tables(self) -> List[str]:
        return sorted(self.guard.allowed_tables)

    @staticmethod
    def build_rule_based_sql(question: str) -> Optional[SQLCandidate]:
        """Hand-written templates for well-known question shapes; user text is always bound."""
        text = (question or "").strip().rstrip("?.! ")
        if not text:
            return None

        name_match = NAME_SUFFIX_PATTERN.search(text)
        name = name_match.group(1).strip() if name_match else ""
        words = name.lower().split()
        if any(word in QUALIFIER_WORDS for word in words):
            return None
        if words and words[0] in NON_NAME_WORDS:
            name = ""

        leave_type_match = LEAVE_TYPE_PATTERN.search(text)
        if leave_type_match:
            conditions = ["LOWER(leave_types.leave_name) LIKE ?"]
            params: List[Any] = [f"%{leave_type_match.group(1).lower()}%"]
            if name:
                conditions.append("LOWER(employees.employee_name) LIKE ?")
                params.append(f"%{name.lower()}%")
            return SQLCandidate(f"{LEAVE_BALANCE_SQL} WHERE {' AND '.join(conditions)}", tuple(params))

        if name and REMAINING_LEAVES_PATTERN.search(text):
            return SQLCandidate(
                f"{LEAVE_BALANCE_SQL} WHERE LOWER(employees.employee_name) LIKE ?",
                (f"%{name.lower()}%",),
            )

        if ACTIVITY_LOG_PATTERN.search(text) and not COUNT_WORDS_PATTERN.search(text):
            return SQLCandidate(ACTIVITY_LOG_SQL)

        return None

    async def generate_sql(self, question: str) -> SQLCandidate:
        candidate = self.build_rule_based_sql(question)
        if candidate is not None:
            LOGGER.info("Using rule-based SQL: %s", candidate.sql)
        else:
            candidate = SQLCandidate(await self._generate_with_model(question))
        gated = self.guard.gate(candidate.sql)
        LOGGER.info("Gated SQL: %s", gated)
        return SQLCandidate(gated, candidate.params)

    async def _generate_with_model(self, question: str) -> str:
        if self.llm_service is None:
            raise SQLGenerationError("No completion backend configured for SQL generation.")
        system_prompt = SQL_PROMPT.format(
            semantic_schema=json.dumps(SEMANTIC_SCHEMA, indent=2),
            table_list=", ".join(self.available_tables()),
            join_guidance=JOIN_GUIDANCE,
            column_hints=COLUMN_HINTS,
            default_limit=self.guard.default_limit,
        )
        try:
            raw = await asyncio.to_thread(
                self.llm_service.complete,
                system_prompt,
                [{"role": "user", "content": question}],
                0.0,
            )
        except LLMServiceError as exc:
            raise SQLGenerationError(f"SQL generation call failed: {exc}") from exc
        sql = strip_markdown(raw)
        if not sql:
            raise SQLGenerationError("SQL generation returned an empty statement.")
        return sql

    async def run(self, question: str, history: Sequence[HistoryTurn] = ()) -> DatabaseResult:
        resolved_question = resolve_reference(question, history)
        if resolved_question != question:
            LOGGER.info("Resolved follow-up question to %r", resolved_question)

        try:
            candidate = await self.generate_sql(resolved_question)
        except SQLGenerationError as exc:
            LOGGER.warning("SQL generation failed: %s", exc)
            return DatabaseResult(answer=GENERATION_FAILED_ANSWER)

        try:
            rows = await self.executor.execute(candidate.sql, candidate.params)
        except SQLExecutionError as exc:
            LOGGER.warning("SQL execution failed: %s sql=%s", exc, candidate.sql)
            return DatabaseResult(answer=EXECUTION_FAILED_ANSWER, sql=candidate.sql, params=candidate.params)

        enriched = await self.enricher.enrich(candidate.sql, rows)
        answer = await self.formatter.format(question, candidate.sql, enriched)
        return DatabaseResult(
            answer=answer,
            sql=candidate.sql,
            params=candidate.params,
            rows=enriched,
            succeeded=True,
        )

    async def run_page(self, descriptor: QueryDescriptor, offset: int, limit: int) -> DatabaseResult:
        paged_sql = apply_limit_offset(descriptor.sql, limit, offset)
        try:
            paged_sql = self.guard.gate(paged_sql)
        except UnsafeQueryError as exc:
            LOGGER.warning("Stored query could not be paginated: %s", exc)
            return DatabaseResult(answer=PAGE_REUSE_FAILED_ANSWER)

        try:
            rows = await self.executor.execute(paged_sql, descriptor.params)
        except SQLExecutionError as exc:
            LOGGER.warning("SQL execution failed (pagination): %s sql=%s", exc, paged_sql)
            return DatabaseResult(answer=PAGE_EXECUTION_FAILED_ANSWER, sql=paged_sql, params=descriptor.params)

        page_start = max(0, offset) + 1
        if descriptor.original_question:
            question = f"{descriptor.original_question} (showing results starting from row {page_start})"
        else:
            question = f"Follow-up page of results starting from row {page_start}"

        enriched = await self.enricher.enrich(paged_sql, rows)
        answer = await self.formatter.format(question, paged_sql, enriched)
        return DatabaseResult(
            answer=answer,
            sql=paged_sql,
            params=descriptor.params,
            rows=enriched,
            succeeded=True,
        )
