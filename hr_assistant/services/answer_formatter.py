from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from .database import QueryExecutor, SQLExecutionError
from .llm_service import LLMService, LLMServiceError


LOGGER = logging.getLogger(__name__)

NO_ROWS_ANSWER = "No matching records were found in the database for this question."
MAX_ROWS_JSON_CHARS = 6000

IDENTIFIER_COLUMNS = {"id", "employee_id", "target_employee_id", "record_id", "user_id"}

ANSWER_PROMPT = """You are an HR data explainer.

User question:
{question}

SQL executed:
{sql}

Rows (JSON):
{rows_json}

Provide a concise, friendly answer using ONLY the data shown. Summarize patterns instead of dumping raw JSON.
- Start by clearly mentioning that this answer is based on live HR/operations database records.
- If rows include category_id (leave_type_id), present it clearly (e.g., "Category 2: 8 remaining leaves").
- If the employee name is present, echo it; if not, describe the match (e.g., matched by attendance device ID).
- If the SQL query uses the activity_logs table, describe each log entry in natural language (who did what, on which module/record, and when) instead of listing raw IDs.
- Prefer describing entities using their descriptive fields (names, emails, statuses, dates).
- Unless the user explicitly asks for IDs, do not mention internal numeric identifiers like id, employee_id, record_id, or user_id. Refer to records generically or by human-readable fields such as names.
- Do not fabricate category names or field values that are not present in the rows."""


def _as_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not number.is_integer():
        return None
    return int(number)


class RowEnricher:
    """Resolves employee/user foreign keys in result rows into names and emails."""

    EMPLOYEE_LOOKUP = "SELECT id, employee_name, office_email FROM employees WHERE id IN ({placeholders})"
    USER_LOOKUP = "SELECT id, first_name, last_name, email FROM users WHERE id IN ({placeholders})"

    def __init__(self, executor: QueryExecutor) -> None:
        self.executor = executor

    async def enrich(self, sql: str, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return list(rows)

        touches_activity_logs = "activity_logs" in (sql or "").lower()
        employee_ids: Set[int] = set()
        user_ids: Set[int] = set()
        for row in rows:
            employee_id = self._employee_key(row, touches_activity_logs)
            if employee_id is not None:
                employee_ids.add(employee_id)
            user_id = _as_id(row.get("user_id"))
            if user_id is not None:
                user_ids.add(user_id)

        if not employee_ids and not user_ids:
            return list(rows)

        employees, users = await asyncio.gather(
            self._lookup_employees(employee_ids),
            self._lookup_users(user_ids),
        )
        if not employees and not users:
            return list(rows)

        enriched: List[Dict[str, Any]] = []
        for row in rows:
            employee = employees.get(self._employee_key(row, touches_activity_logs))
            user = users.get(_as_id(row.get("user_id")))
            merged = dict(row)
            additions = {
                "employee_name": (employee or {}).get("employee_name"),
                "employee_office_email": (employee or {}).get("office_email"),
                "actor_name": (user or {}).get("name"),
                "actor_email": (user or {}).get("email"),
            }
            for column, value in additions.items():
                if value is not None:
                    merged[column] = value
            enriched.append(merged)
        return enriched

    @staticmethod
    def _employee_key(row: Dict[str, Any], touches_activity_logs: bool) -> Optional[int]:
        for column in ("employee_id", "target_employee_id"):
            candidate = _as_id(row.get(column))
            if candidate is not None:
                return candidate
        if touches_activity_logs and row.get("module") == "Employee":
            return _as_id(row.get("record_id"))
        return None

    async def _lookup_employees(self, ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
        found = await self._lookup(self.EMPLOYEE_LOOKUP, ids, "Employee")
        return {
            key: {"employee_name": row.get("employee_name"), "office_email": row.get("office_email")}
            for key, row in found.items()
        }

    async def _lookup_users(self, ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
        found = await self._lookup(self.USER_LOOKUP, ids, "User")
        return {
            key: {
                "name": " ".join(part for part in (row.get("first_name"), row.get("last_name")) if part) or None,
                "email": row.get("email"),
            }
            for key, row in found.items()
        }

    async def _lookup(self, template: str, ids: Iterable[int], label: str) -> Dict[int, Dict[str, Any]]:
        id_list = sorted(ids)
        if not id_list:
            return {}
        sql = template.format(placeholders=", ".join("?" for _ in id_list))
        try:
            rows = await self.executor.execute(sql, id_list)
        except SQLExecutionError as exc:
            LOGGER.warning("%s enrichment lookup failed: %s", label, exc)
            return {}
        found: Dict[int, Dict[str, Any]] = {}
        for row in rows:
            key = _as_id(row.get("id"))
            if key is not None:
                found[key] = row
        return found


class AnswerFormatter:
    """Turns result rows into a natural-language explanation."""

    def __init__(self, llm_service: Optional[LLMService] = None) -> None:
        self.llm_service = llm_service

    async def format(self, question: str, sql: str, rows: Sequence[Dict[str, Any]]) -> str:
        if not rows:
            return NO_ROWS_ANSWER

        if self.llm_service is not None:
            rows_json = json.dumps(list(rows), default=str)[:MAX_ROWS_JSON_CHARS]
            system_prompt = ANSWER_PROMPT.format(question=question, sql=sql, rows_json=rows_json)
            try:
                answer = await asyncio.to_thread(
                    self.llm_service.complete,
                    system_prompt,
                    [{"role": "user", "content": question}],
                )
            except LLMServiceError as exc:
                LOGGER.warning("Answer formatting call failed, using tabular summary: %s", exc)
            else:
                if answer:
                    return answer
        return summarize_rows(rows)


def summarize_rows(rows: Sequence[Dict[str, Any]], max_rows: int = 10) -> str:
    """Deterministic summary used when the completion backend is unavailable."""
    if not rows:
        return NO_ROWS_ANSWER
    columns: List[str] = []
    for row in rows:
        for column in row:
            if column in IDENTIFIER_COLUMNS or column in columns:
                continue
            columns.append(column)
    if not columns:
        columns = list(rows[0].keys())
    noun = "record" if len(rows) == 1 else "records"
    return f"Found {len(rows)} matching {noun}:\n\n" + to_markdown_table(rows, columns, max_rows=max_rows)


def to_markdown_table(rows: Sequence[Dict[str, Any]], columns: Sequence[str], max_rows: int = 10) -> str:
    if not rows:
        return "No rows returned for this query."
    display_rows = rows[:max_rows]
    header = "| " + " | ".join(columns) + " |"
    separator = "| " + " | ".join("---" for _ in columns) + " |"
    body = []
    for row in display_rows:
        body.append("| " + " | ".join(_cell(row.get(column)) for column in columns) + " |")
    footer = ""
    if len(rows) > max_rows:
        footer = f"\n_{len(rows) - max_rows} more rows not shown (limited to {max_rows})._"
    return "\n".join([header, separator, *body]) + footer


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value)
