from pathlib import Path
from typing import Dict, List, Optional

import duckdb
import pytest

from hr_assistant.services.database import QueryExecutor, ReadOnlyPool
from hr_assistant.services.llm_service import LLMService, LLMServiceError
from hr_assistant.services.metrics import MetricsTracker
from hr_assistant.services.query_classifier import IntentClassifier
from hr_assistant.services.router import QuestionRouter
from hr_assistant.services.session_store import InMemorySessionStore
from hr_assistant.services.sql_service import SQLService


FIXTURE_STATEMENTS = [
    """CREATE TABLE employees (
        id INTEGER, employee_name VARCHAR, office_email VARCHAR, department VARCHAR,
        designation VARCHAR, is_active BOOLEAN, joining_date DATE
    )""",
    """INSERT INTO employees VALUES
        (1, 'Hamid Khan', 'hamid.khan@example.com', 'Engineering', 'Backend Engineer', TRUE, DATE '2021-03-01'),
        (2, 'Sara Ahmed', 'sara.ahmed@example.com', 'People', 'HR Manager', TRUE, DATE '2019-07-15'),
        (3, 'Bilal Raza', 'bilal.raza@example.com', 'Finance', 'Accountant', TRUE, DATE '2022-01-10'),
        (4, 'Ayesha Noor', 'ayesha.noor@example.com', 'Engineering', 'QA Engineer', FALSE, DATE '2020-11-23'),
        (5, 'Omar Farooq', 'omar.farooq@example.com', 'Sales', 'Account Executive', TRUE, DATE '2023-05-02')""",
    "CREATE TABLE leave_types (id INTEGER, leave_name VARCHAR, total_leaves INTEGER)",
    "INSERT INTO leave_types VALUES (1, 'Casual Leave', 10), (2, 'Sick Leave', 8), (3, 'Annual Leave', 14)",
    """CREATE TABLE employee_leaves (
        id INTEGER, employee_id INTEGER, leave_type_id INTEGER, total_leaves INTEGER,
        remaining_leaves INTEGER, year INTEGER
    )""",
    """INSERT INTO employee_leaves VALUES
        (1, 1, 1, 10, 7, 2024),
        (2, 1, 2, 8, 8, 2024),
        (3, 2, 1, 10, 3, 2024),
        (4, 3, 3, 14, 12, 2024)""",
    "CREATE TABLE users (id INTEGER, first_name VARCHAR, last_name VARCHAR, email VARCHAR)",
    "INSERT INTO users VALUES (10, 'Sara', 'Ahmed', 'sara.admin@example.com'), (11, 'Admin', NULL, 'admin@example.com')",
    """CREATE TABLE activity_logs (
        id INTEGER, user_id INTEGER, module VARCHAR, action VARCHAR, record_id INTEGER,
        created_at TIMESTAMP
    )""",
    """INSERT INTO activity_logs VALUES
        (1, 10, 'Employee', 'update', 1, TIMESTAMP '2024-06-01 09:30:00'),
        (2, 11, 'Leave', 'approve', 3, TIMESTAMP '2024-06-02 14:00:00'),
        (3, 10, 'Employee', 'create', 5, TIMESTAMP '2024-06-03 08:15:00')""",
]


def build_fixture_database(path: Path) -> Path:
    connection = duckdb.connect(str(path))
    try:
        for statement in FIXTURE_STATEMENTS:
            connection.execute(statement)
    finally:
        connection.close()
    return path


class FakeLLM(LLMService):
    """Scripted completion backend; an unscripted prompt kind behaves like an outage."""

    PROMPT_KINDS = {
        "intent classifier": "intent",
        "text-to-SQL": "sql",
        "HR data explainer": "answer",
        "knowledge base": "rag",
    }

    def __init__(
        self,
        intent: Optional[str] = None,
        sql: Optional[str] = None,
        answer: Optional[str] = None,
        rag: Optional[str] = None,
    ) -> None:
        super().__init__(api_key=None)
        self.replies = {"intent": intent, "sql": sql, "answer": answer, "rag": rag}
        self.calls: List[Dict[str, object]] = []

    def complete(self, system_prompt, messages=(), temperature=None):
        kind = next(
            (label for marker, label in self.PROMPT_KINDS.items() if marker in system_prompt),
            "unknown",
        )
        self.calls.append({"kind": kind, "system_prompt": system_prompt, "messages": list(messages)})
        reply = self.replies.get(kind)
        if reply is None:
            raise LLMServiceError(f"No scripted reply for {kind} prompt.")
        return reply

    def kinds(self) -> List[str]:
        return [call["kind"] for call in self.calls]


class FakeRetriever:
    def __init__(self, documents=None, error: Optional[Exception] = None) -> None:
        self.documents = documents or []
        self.error = error
        self.questions: List[str] = []

    def retrieve(self, question: str):
        self.questions.append(question)
        if self.error is not None:
            raise self.error
        return list(self.documents)


@pytest.fixture(scope="session")
def database_path(tmp_path_factory) -> Path:
    return build_fixture_database(tmp_path_factory.mktemp("db") / "hr.duckdb")


@pytest.fixture(scope="session")
def pool(database_path: Path) -> ReadOnlyPool:
    pool = ReadOnlyPool(database_path, size=2)
    yield pool
    pool.close()


@pytest.fixture
def executor(pool: ReadOnlyPool) -> QueryExecutor:
    return QueryExecutor(pool, timeout_seconds=3.0)


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def retriever() -> FakeRetriever:
    return FakeRetriever(
        documents=[
            {
                "content": "Refunds are issued within 14 days of a cancelled order. Annual plans are prorated.",
                "metadata": {"source": "policies/refund_policy.md"},
            }
        ]
    )


def make_router(executor: QueryExecutor, llm: FakeLLM, retriever: FakeRetriever, metrics=None) -> QuestionRouter:
    return QuestionRouter(
        session_store=InMemorySessionStore(),
        classifier=IntentClassifier(llm),
        sql_service=SQLService(executor, llm_service=llm),
        retriever=retriever,
        llm_service=llm,
        metrics=metrics if metrics is not None else MetricsTracker(),
    )


@pytest.fixture
def router_factory(executor: QueryExecutor):
    def factory(llm: FakeLLM, retriever: FakeRetriever, metrics=None) -> QuestionRouter:
        return make_router(executor, llm, retriever, metrics)

    return factory
