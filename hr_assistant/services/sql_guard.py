"""Safety gate for generated SQL.

Every statement that reaches the database passes through :meth:`SQLGuard.gate`:
single read-only SELECT, no data-changing keywords, allow-listed tables only,
bounded result size.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Tuple

import sqlparse
from sqlparse import tokens as T
from sqlparse.exceptions import SQLParseError

from .semantic_schema import ALLOWED_TABLES


LOGGER = logging.getLogger(__name__)

DEFAULT_LIMIT = 50

SELECT_PATTERN = re.compile(r"^\s*select\b", re.IGNORECASE)
FORBIDDEN_PATTERN = re.compile(
    r"\b(insert|update|delete|drop|alter|truncate|create|grant|revoke|replace)\b|;",
    re.IGNORECASE,
)
COUNT_PATTERN = re.compile(r"\bcount\s*\(", re.IGNORECASE)
TRAILING_LIMIT_PATTERN = re.compile(r"\s*\blimit\s+(\d+)(?:\s+offset\s+\d+)?\s*$", re.IGNORECASE)
TRAILING_SEMICOLONS = re.compile(r"[;\s]+$")
STRING_LITERAL_PATTERN = re.compile(r"'(?:[^']|'')*'")
# Functions whose argument list contains a FROM that is not a table reference.
FROM_FUNCTIONS = frozenset({"EXTRACT", "TRIM", "SUBSTRING", "POSITION", "OVERLAY"})
# Keywords that end a FROM item, so they can never be an alias.
CLAUSE_KEYWORDS = frozenset(
    {
        "WHERE", "ON", "USING", "GROUP", "ORDER", "HAVING", "LIMIT", "OFFSET", "FETCH",
        "UNION", "EXCEPT", "INTERSECT", "WINDOW", "QUALIFY", "JOIN", "LEFT", "RIGHT",
        "INNER", "OUTER", "FULL", "CROSS", "NATURAL", "SELECT",
    }
)


class SQLGenerationError(Exception):
    """Raised when a safe SQL statement cannot be produced for a question."""


class UnsafeQueryError(SQLGenerationError):
    """Raised when a candidate statement fails the safety gate."""


def strip_markdown(text: Optional[str]) -> str:
    """Remove a surrounding markdown code fence from model output."""
    if not text:
        return ""
    fenced = re.search(r"```[a-zA-Z]*\s*(.*?)```", text, re.DOTALL)
    if fenced:
        return fenced.group(1).strip()
    return text.strip()


def strip_trailing_semicolons(sql: str) -> str:
    return TRAILING_SEMICOLONS.sub("", (sql or "").strip())


def is_aggregate_count(sql: str) -> bool:
    return bool(COUNT_PATTERN.search(sql or ""))


def outer_limit(sql: str) -> Optional[int]:
    """LIMIT value of the outermost query; string literals and subqueries do not count."""
    masked = STRING_LITERAL_PATTERN.sub("''", strip_trailing_semicolons(sql))
    match = TRAILING_LIMIT_PATTERN.search(masked)
    return int(match.group(1)) if match else None


def parse_limit(sql: str, default: int = DEFAULT_LIMIT) -> int:
    value = outer_limit(sql or "")
    if not value:
        return default
    return value


def apply_limit_offset(sql: str, limit: int, offset: int) -> str:
    """Rewrite the window of previously gated SQL; COUNT queries are returned as-is."""
    if is_aggregate_count(sql):
        return sql
    cleaned = strip_trailing_semicolons(sql)
    if not cleaned:
        return ""
    safe_limit = limit if limit and limit > 0 else DEFAULT_LIMIT
    safe_offset = max(0, offset or 0)
    without_window = TRAILING_LIMIT_PATTERN.sub("", cleaned)
    return f"{without_window} LIMIT {safe_limit} OFFSET {safe_offset}"


def _significant_tokens(sql: str) -> List[sqlparse.sql.Token]:
    try:
        parsed = sqlparse.parse(sql or "")
    except SQLParseError as exc:
        raise UnsafeQueryError(f"Statement could not be parsed: {exc}") from exc
    statements = [statement for statement in parsed if str(statement).strip()]
    if len(statements) != 1:
        raise UnsafeQueryError("Exactly one statement is allowed.")
    tokens = []
    for token in statements[0].flatten():
        if token.ttype in T.Comment:
            raise UnsafeQueryError("Comments are not allowed in generated SQL.")
        if not token.is_whitespace:
            tokens.append(token)
    return tokens


def _is_punctuation(token: sqlparse.sql.Token, value: str) -> bool:
    return token.ttype is T.Punctuation and token.value == value


def _is_name(token: sqlparse.sql.Token) -> bool:
    return token.ttype in T.Name or token.ttype in T.String.Symbol or token.ttype in T.Keyword


def _is_alias(token: sqlparse.sql.Token) -> bool:
    if token.ttype in T.Name or token.ttype in T.String.Symbol:
        return True
    if token.ttype in T.Keyword and token.ttype not in T.Keyword.DML:
        return token.value.split()[0].upper() not in CLAUSE_KEYWORDS
    return False


def _read_table_name(tokens: List[sqlparse.sql.Token], index: int, end: int) -> Tuple[str, int]:
    if index >= end or not _is_name(tokens[index]):
        raise UnsafeQueryError("Only allow-listed tables may follow FROM or JOIN.")
    name = tokens[index].value
    index += 1
    while index + 1 < end and _is_punctuation(tokens[index], ".") and _is_name(tokens[index + 1]):
        name = tokens[index + 1].value
        index += 2
    return name.strip("`\"").lower(), index


def _closing_paren(tokens: List[sqlparse.sql.Token], index: int, end: int) -> int:
    depth = 0
    for position in range(index, end):
        if _is_punctuation(tokens[position], "("):
            depth += 1
        elif _is_punctuation(tokens[position], ")"):
            depth -= 1
            if depth == 0:
                return position
    raise UnsafeQueryError("Unbalanced parentheses.")


def _read_sources(tokens: List[sqlparse.sql.Token], index: int, end: int, tables: List[str]) -> int:
    """Consume the FROM/JOIN item list starting at ``index``; return the first index after it."""
    while True:
        if index < end and _is_punctuation(tokens[index], "("):
            following = tokens[index + 1] if index + 1 < end else None
            if following is None or following.ttype not in T.Keyword.DML or following.value.upper() != "SELECT":
                raise UnsafeQueryError("Only allow-listed tables may follow FROM or JOIN.")
            closing = _closing_paren(tokens, index, end)
            _scan(tokens, index + 1, closing, tables)
            index = closing + 1
        else:
            name, index = _read_table_name(tokens, index, end)
            if index < end and _is_punctuation(tokens[index], "("):
                raise UnsafeQueryError(f"Table function {name} is not allowed.")
            if name not in tables:
                tables.append(name)
        if index < end and tokens[index].ttype in T.Keyword and tokens[index].value.upper() == "AS":
            index += 1
        if index < end and _is_alias(tokens[index]):
            index += 1
        if index < end and _is_punctuation(tokens[index], ","):
            index += 1
            continue
        return index


def _scan(tokens: List[sqlparse.sql.Token], start: int, end: int, tables: List[str]) -> None:
    inside_from_function: List[bool] = []
    index = start
    while index < end:
        token = tokens[index]
        previous = tokens[index - 1].value.upper() if index > start else ""
        if _is_punctuation(token, "("):
            inside_from_function.append(previous in FROM_FUNCTIONS)
        elif _is_punctuation(token, ")"):
            if inside_from_function:
                inside_from_function.pop()
        elif token.ttype in T.Keyword and token.value.split()[-1].upper() in ("FROM", "JOIN"):
            skipped = previous == "DISTINCT" or (inside_from_function and inside_from_function[-1])
            if not skipped:
                index = _read_sources(tokens, index + 1, end, tables)
                continue
        index += 1


def referenced_tables(sql: str) -> List[str]:
    """Every relation read after FROM/JOIN, schema prefixes and quoting removed.

    Raises :class:`UnsafeQueryError` when a source is anything other than a plain
    table name or a subquery: file paths, table functions, comments.
    """
    tokens = _significant_tokens(sql)
    tables: List[str] = []
    _scan(tokens, 0, len(tokens), tables)
    return tables


class SQLGuard:
    """Validates candidate statements against the read-only contract."""

    def __init__(self, allowed_tables: Iterable[str] = ALLOWED_TABLES, default_limit: int = DEFAULT_LIMIT) -> None:
        self.allowed_tables = frozenset(table.lower() for table in allowed_tables)
        self.default_limit = default_limit

    def gate(self, sql: str) -> str:
        """Return the statement ready for execution or raise :class:`UnsafeQueryError`."""
        candidate = self.ensure_select_only(sql)
        self.ensure_allowed_tables(candidate)
        return self.ensure_limit(candidate)

    @staticmethod
    def ensure_select_only(sql: str) -> str:
        candidate = strip_trailing_semicolons(sql)
        if not SELECT_PATTERN.match(candidate):
            raise UnsafeQueryError("Only SELECT statements are allowed.")
        if FORBIDDEN_PATTERN.search(candidate):
            raise UnsafeQueryError("Statement contains non-SELECT or unsafe content.")
        return candidate

    def ensure_allowed_tables(self, sql: str) -> str:
        for table in referenced_tables(sql):
            if table not in self.allowed_tables:
                raise UnsafeQueryError(f"Table {table} is not allowed.")
        return sql

    def ensure_limit(self, sql: str) -> str:
        if is_aggregate_count(sql) or outer_limit(sql) is not None:
            return sql
        return f"{sql} LIMIT {self.default_limit}"
