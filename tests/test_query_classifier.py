import asyncio

import pytest

from conftest import FakeLLM
from hr_assistant.services.query_classifier import Intent, IntentClassifier


@pytest.mark.parametrize(
    "question, expected",
    [
        ("Hello there", Intent.GENERAL_CHAT),
        ("thanks a lot!", Intent.GENERAL_CHAT),
        ("Hello, list all employees", Intent.GENERAL_CHAT),
        ("thanks, show Hamid's leave balance", Intent.GENERAL_CHAT),
        ("How many leaves are left for Hamid?", Intent.DATABASE_QUERY),
        ("List all employees in Engineering", Intent.DATABASE_QUERY),
        ("Show the onboarding policy", Intent.RAG_QUERY),
        ("What is our refund policy?", Intent.RAG_QUERY),
        ("salary of Bilal Raza", Intent.DATABASE_QUERY),
        ("Who is Hamid Khan?", Intent.DATABASE_QUERY),
    ],
)
def test_rule_tier(question, expected):
    classifier = IntentClassifier()
    assert classifier.classify_by_rules(question) == expected


def test_rules_inconclusive_for_unrelated_text():
    classifier = IntentClassifier()
    assert classifier.classify_by_rules("What is the weather like on Mars?") is None
    assert classifier.classify_by_rules("") is None


def test_rule_tier_skips_the_model():
    llm = FakeLLM(intent="RAG_QUERY")
    intent = asyncio.run(IntentClassifier(llm).classify("How many employees are active?"))
    assert intent == Intent.DATABASE_QUERY
    assert llm.calls == []


def test_model_tier_label_is_normalized():
    llm = FakeLLM(intent="  general_chat \n")
    intent = asyncio.run(IntentClassifier(llm).classify("Tell me a joke about Mars"))
    assert intent == Intent.GENERAL_CHAT
    assert llm.kinds() == ["intent"]


def test_unexpected_label_falls_back_to_documents():
    llm = FakeLLM(intent="I think this is a database question")
    intent = asyncio.run(IntentClassifier(llm).classify("What is the weather like on Mars?"))
    assert intent == Intent.RAG_QUERY


def test_model_outage_falls_back_to_documents():
    intent = asyncio.run(IntentClassifier(FakeLLM()).classify("What is the weather like on Mars?"))
    assert intent == Intent.RAG_QUERY


def test_normalize_label():
    assert IntentClassifier.normalize_label("database_query") == Intent.DATABASE_QUERY
    assert IntentClassifier.normalize_label("SQL") is None
    assert IntentClassifier.normalize_label(None) is None
