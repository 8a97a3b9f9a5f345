import pytest
from fastapi.testclient import TestClient

from conftest import FakeLLM
from hr_assistant.main import app, get_metrics, get_router, get_sql_service
from hr_assistant.services.metrics import MetricsTracker
from hr_assistant.services.router import NO_PREVIOUS_RESULTS_ANSWER, PAGINATED_DATABASE_PREFIX


INVALID_PAYLOAD = {"error": "Invalid payload: 'question' is required and must be a string."}


@pytest.fixture
def metrics() -> MetricsTracker:
    return MetricsTracker()


@pytest.fixture
def router(router_factory, retriever, metrics):
    return router_factory(FakeLLM(rag="Refunds are issued within 14 days."), retriever, metrics)


@pytest.fixture
def client(router, metrics):
    app.dependency_overrides[get_router] = lambda: router
    app.dependency_overrides[get_metrics] = lambda: metrics
    app.dependency_overrides[get_sql_service] = lambda: router.sql_service
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_chat_database_answer(client: TestClient):
    response = client.post("/chat", json={"question": "How many leaves are left for Hamid?", "sessionId": "u1"})
    assert response.status_code == 200
    payload = response.json()
    assert set(payload) == {"answer", "intent", "source"}
    assert payload["intent"] == "DATABASE_QUERY"
    assert payload["source"] == "database"
    assert "Hamid Khan" in payload["answer"]


def test_chat_session_supports_pagination(client: TestClient):
    client.post("/chat", json={"question": "How many leaves are left for Hamid?", "sessionId": "u2"})
    response = client.post("/chat", json={"question": "next", "sessionId": "u2"})
    assert response.status_code == 200
    assert response.json()["answer"].startswith(PAGINATED_DATABASE_PREFIX)


def test_chat_without_session_has_no_memory(client: TestClient):
    client.post("/chat", json={"question": "How many leaves are left for Hamid?"})
    response = client.post("/chat", json={"question": "next"})
    assert response.json() == {"answer": NO_PREVIOUS_RESULTS_ANSWER, "intent": "GENERAL_CHAT", "source": "general"}


def test_chat_document_answer(client: TestClient):
    response = client.post("/chat", json={"question": "What is our refund policy?"})
    payload = response.json()
    assert payload["intent"] == "RAG_QUERY"
    assert payload["source"] == "rag"
    assert payload["answer"].endswith("Refunds are issued within 14 days.")


@pytest.mark.parametrize(
    "body",
    [{}, {"question": 42}, {"question": ""}, {"question": "   "}, {"question": None}, {"sessionId": "u3"}],
)
def test_chat_rejects_invalid_payload(client: TestClient, router, body):
    response = client.post("/chat", json=body)
    assert response.status_code == 400
    assert response.json() == INVALID_PAYLOAD
    assert router.session_store.size() == 0


@pytest.mark.parametrize("session_id", [123, {"id": "u4"}, ["u4"], True])
def test_chat_non_string_session_id_is_ignored(client: TestClient, router, session_id):
    response = client.post("/chat", json={"question": "hello", "sessionId": session_id})
    assert response.status_code == 200
    assert response.json()["intent"] == "GENERAL_CHAT"
    assert router.session_store.size() == 0


def test_chat_hides_unexpected_errors(client: TestClient, router, monkeypatch):
    async def explode(question, session_id=None):
        raise RuntimeError("connection string with password")

    monkeypatch.setattr(router, "route", explode)
    response = client.post("/chat", json={"question": "hello"})
    assert response.status_code == 500
    assert response.json() == {"error": "Internal error while generating answer."}


def test_health():
    response = TestClient(app).get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_metrics_endpoint_reports_usage(client: TestClient):
    client.post("/chat", json={"question": "hello"})
    response = client.get("/metrics")
    assert response.status_code == 200
    payload = response.json()
    assert payload["grand_total"] == 1
    assert payload["per_intent"]["GENERAL_CHAT"]["source:general"] == 1


def test_structured_tables_lists_allow_list(client: TestClient):
    tables = client.get("/structured-tables").json()["tables"]
    assert "employees" in tables
    assert tables == sorted(tables)
