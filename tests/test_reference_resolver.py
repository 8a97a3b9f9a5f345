from hr_assistant.services.reference_resolver import (
    extract_recent_name,
    needs_context,
    resolve_reference,
)
from hr_assistant.services.session_store import HistoryTurn


HISTORY = [
    HistoryTurn("user", "Who is Hamid Khan?"),
    HistoryTurn("assistant", "This answer is based on live HR database records."),
]


def test_follow_up_gets_most_recent_name():
    assert resolve_reference("What is his leave balance?", HISTORY) == "What is his leave balance? for Hamid Khan"


def test_question_with_a_name_is_left_alone():
    question = "Show attendance for Sara Ahmed"
    assert resolve_reference(question, HISTORY) == question


def test_question_without_trigger_is_left_alone():
    assert resolve_reference("List all departments", HISTORY) == "List all departments"


def test_no_name_in_history_leaves_question_unchanged():
    history = [HistoryTurn("user", "list employees")]
    assert resolve_reference("show their attendance", history) == "show their attendance"


def test_newest_turn_wins():
    history = [
        HistoryTurn("user", "Who is Hamid Khan?"),
        HistoryTurn("user", "Tell me about Sara Ahmed."),
    ]
    assert extract_recent_name(history) == "Sara Ahmed"


def test_needs_context_triggers():
    assert needs_context("salary details")
    assert needs_context("what about that employee")
    assert not needs_context("hello")


def test_name_stops_before_trailing_words():
    assert extract_recent_name([HistoryTurn("user", "who is Hamid Khan in sales")]) == "Hamid Khan"
    assert extract_recent_name([HistoryTurn("user", "Tell me about Sara Ahmed from People")]) == "Sara Ahmed"
    assert extract_recent_name([HistoryTurn("user", "who is bilal raza and what does he do?")]) == "bilal raza"
