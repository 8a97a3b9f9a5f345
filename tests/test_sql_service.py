import asyncio

import pytest

from conftest import FakeLLM
from hr_assistant.services.answer_formatter import NO_ROWS_ANSWER
from hr_assistant.services.database import QueryExecutor
from hr_assistant.services.session_store import HistoryTurn, QueryDescriptor
from hr_assistant.services.sql_service import (
    ACTIVITY_LOG_SQL,
    EXECUTION_FAILED_ANSWER,
    GENERATION_FAILED_ANSWER,
    PAGE_REUSE_FAILED_ANSWER,
    SQLService,
)


def test_leave_type_template_binds_name_and_type():
    candidate = SQLService.build_rule_based_sql("How many casual leaves are remaining for Hamid Khan?")
    assert "JOIN leave_types" in candidate.sql
    assert "Hamid" not in candidate.sql
    assert candidate.params == ("%casual%", "%hamid khan%")


def test_activity_log_template_only_for_listings():
    assert SQLService.build_rule_based_sql("Show the latest activity logs").sql == ACTIVITY_LOG_SQL
    assert SQLService.build_rule_based_sql("How many activity logs exist?") is None


def test_collective_nouns_are_not_names():
    assert SQLService.build_rule_based_sql("remaining leaves of all employees") is None
    assert SQLService.build_rule_based_sql("") is None


def test_department_filter_is_left_to_the_model():
    assert SQLService.build_rule_based_sql("Show casual leave of employees in Engineering") is None
    assert SQLService.build_rule_based_sql("remaining leaves for Hamid from sales") is None
    everyone = SQLService.build_rule_based_sql("casual leaves of all employees")
    assert everyone.params == ("%casual%",)


def test_department_question_uses_model_sql(executor: QueryExecutor):
    llm = FakeLLM(
        sql=(
            "SELECT employees.employee_name, employee_leaves.remaining_leaves FROM employee_leaves "
            "JOIN employees ON employee_leaves.employee_id = employees.id "
            "WHERE employee_leaves.leave_type_id = 1 AND employees.department = 'Engineering'"
        ),
        answer="Hamid Khan has 7 casual leaves left.",
    )
    result = asyncio.run(SQLService(executor, llm_service=llm).run("Show casual leave of employees in Engineering"))

    assert "sql" in llm.kinds()
    assert result.rows == [{"employee_name": "Hamid Khan", "remaining_leaves": 7}]


def test_file_reads_from_model_sql_are_rejected(executor: QueryExecutor, tmp_path):
    secret = tmp_path / "secret.csv"
    secret.write_text("token\nabc123\n")
    for sql in (f"SELECT * FROM '{secret}'", f"SELECT * FROM employees, read_csv('{secret}')"):
        llm = FakeLLM(sql=sql)
        result = asyncio.run(SQLService(executor, llm_service=llm).run("Show me the secret file"))
        assert result.answer == GENERATION_FAILED_ANSWER
        assert result.rows == []


def test_leave_question_runs_against_database(executor: QueryExecutor):
    service = SQLService(executor)
    result = asyncio.run(service.run("How many leaves are left for Hamid?"))

    assert result.succeeded
    assert result.sql.endswith("LIMIT 50")
    assert result.params == ("%hamid%",)
    assert {row["category_name"] for row in result.rows} == {"Casual Leave", "Sick Leave"}
    assert "Hamid Khan" in result.answer
    assert "remaining_leaves" in result.answer


def test_quotes_in_names_are_bound_not_interpolated(executor: QueryExecutor):
    result = asyncio.run(SQLService(executor).run("remaining leaves for O'Brien"))
    assert result.succeeded
    assert result.params == ("%o'brien%",)
    assert result.answer == NO_ROWS_ANSWER


def test_follow_up_question_uses_name_from_history(executor: QueryExecutor):
    history = [HistoryTurn("user", "Who is Hamid Khan?")]
    result = asyncio.run(SQLService(executor).run("What is his leave balance?", history))
    assert result.params == ("%hamid khan%",)
    assert len(result.rows) == 2


def test_update_statement_is_rejected(executor: QueryExecutor):
    llm = FakeLLM(sql="UPDATE employees SET is_active = FALSE")
    result = asyncio.run(SQLService(executor, llm_service=llm).run("Deactivate everyone who joined in 2022"))

    assert not result.succeeded
    assert result.answer == GENERATION_FAILED_ANSWER
    assert result.sql == ""
    assert result.rows == []


def test_model_sql_is_unfenced_and_limited(executor: QueryExecutor):
    llm = FakeLLM(
        sql="```sql\nSELECT employee_name FROM employees WHERE department = 'Engineering' ORDER BY id;\n```",
        answer="Two engineers: Hamid Khan and Ayesha Noor.",
    )
    result = asyncio.run(SQLService(executor, llm_service=llm).run("Which employees work in Engineering?"))

    assert result.succeeded
    assert result.sql == (
        "SELECT employee_name FROM employees WHERE department = 'Engineering' ORDER BY id LIMIT 50"
    )
    assert [row["employee_name"] for row in result.rows] == ["Hamid Khan", "Ayesha Noor"]
    assert result.answer == "Two engineers: Hamid Khan and Ayesha Noor."
    assert llm.kinds() == ["sql", "answer"]


def test_execution_failure_keeps_sql(executor: QueryExecutor):
    llm = FakeLLM(sql="SELECT nickname FROM employees")
    result = asyncio.run(SQLService(executor, llm_service=llm).run("Which employees have nicknames?"))
    assert not result.succeeded
    assert result.answer == EXECUTION_FAILED_ANSWER
    assert result.sql == "SELECT nickname FROM employees LIMIT 50"


def test_no_backend_and_no_template_fails_generation(executor: QueryExecutor):
    result = asyncio.run(SQLService(executor).run("Which employees joined in 2022?"))
    assert result.answer == GENERATION_FAILED_ANSWER


def test_run_page_rewrites_window(executor: QueryExecutor):
    llm = FakeLLM(answer="Page two.")
    descriptor = QueryDescriptor(
        sql="SELECT employee_name FROM employees ORDER BY id LIMIT 2",
        original_question="List employees",
        limit=2,
    )
    result = asyncio.run(SQLService(executor, llm_service=llm).run_page(descriptor, offset=2, limit=2))

    assert result.succeeded
    assert result.sql == "SELECT employee_name FROM employees ORDER BY id LIMIT 2 OFFSET 2"
    assert [row["employee_name"] for row in result.rows] == ["Bilal Raza", "Ayesha Noor"]
    assert llm.calls[0]["messages"][0]["content"] == "List employees (showing results starting from row 3)"


def test_run_page_reuses_bound_parameters(executor: QueryExecutor):
    candidate = SQLService.build_rule_based_sql("remaining leaves for Hamid Khan")
    descriptor = QueryDescriptor(
        sql=f"{candidate.sql} ORDER BY employee_leaves.id LIMIT 1",
        original_question="remaining leaves for Hamid Khan",
        limit=1,
        params=candidate.params,
    )
    result = asyncio.run(SQLService(executor).run_page(descriptor, offset=1, limit=1))
    assert result.succeeded
    assert [row["category_name"] for row in result.rows] == ["Sick Leave"]


@pytest.mark.parametrize("stored_sql", ["DELETE FROM employees", "SELECT * FROM payroll_secrets"])
def test_run_page_regates_stored_sql(executor: QueryExecutor, stored_sql: str):
    descriptor = QueryDescriptor(sql=stored_sql, original_question="q")
    result = asyncio.run(SQLService(executor).run_page(descriptor, offset=50, limit=50))
    assert not result.succeeded
    assert result.answer == PAGE_REUSE_FAILED_ANSWER
