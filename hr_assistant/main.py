from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Dict, List

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .schemas.chat import ChatRequest, ChatResponse, ErrorResponse
from .services.database import QueryExecutor, ReadOnlyPool
from .services.llm_service import LLMService
from .services.metrics import MetricsTracker
from .services.query_classifier import IntentClassifier
from .services.rag_service import RAGService
from .services.router import QuestionRouter
from .services.semantic_schema import resolve_allowed_tables
from .services.session_store import InMemorySessionStore
from .services.sql_guard import SQLGuard
from .services.sql_service import SQLService


LOGGER = logging.getLogger("hr_assistant")
logging.basicConfig(level=logging.INFO)

INVALID_PAYLOAD_ERROR = "Invalid payload: 'question' is required and must be a string."
INTERNAL_ERROR = "Internal error while generating answer."

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    pool = ReadOnlyPool(settings.database_path, size=settings.db_pool_size)
    executor = QueryExecutor(pool, timeout_seconds=settings.sql_timeout_seconds)
    llm_service = LLMService(
        api_key=settings.groq_api_key,
        model_name=settings.llm_model,
        temperature=settings.llm_temperature,
        max_context_chars=settings.rag_max_context_chars,
    )
    if not llm_service.is_configured:
        LOGGER.warning("GROQ_API_KEY is not set; answers fall back to rules and extractive summaries.")
    sql_service = SQLService(
        executor=executor,
        llm_service=llm_service,
        guard=SQLGuard(
            allowed_tables=resolve_allowed_tables(settings.allowed_tables),
            default_limit=settings.default_row_limit,
        ),
    )
    rag_service = RAGService(
        documents_dir=settings.documents_dir,
        persist_directory=settings.vector_store_dir,
        embedding_model=settings.embedding_model,
        top_k=settings.rag_top_k,
    )
    rag_service.build()
    session_store = InMemorySessionStore(max_history=settings.max_history_messages)
    metrics_service = MetricsTracker()

    app.state.sql_service = sql_service
    app.state.metrics_service = metrics_service
    app.state.router = QuestionRouter(
        session_store=session_store,
        classifier=IntentClassifier(llm_service),
        sql_service=sql_service,
        retriever=rag_service,
        llm_service=llm_service,
        metrics=metrics_service,
        default_limit=settings.default_row_limit,
    )

    try:
        yield
    finally:
        session_store.clear()
        pool.close()


app = FastAPI(
    title="HR Assistant",
    description="Routes HR questions to the live database, company documents or small talk.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_router(request: Request) -> QuestionRouter:
    return request.app.state.router


def get_metrics(request: Request) -> MetricsTracker:
    return request.app.state.metrics_service


def get_sql_service(request: Request) -> SQLService:
    return request.app.state.sql_service


@app.exception_handler(RequestValidationError)
async def invalid_payload(request: Request, exc: RequestValidationError) -> JSONResponse:
    LOGGER.info("invalid_payload path=%s errors=%s", request.url.path, len(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(error=INVALID_PAYLOAD_ERROR).model_dump(),
    )


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/metrics")
def metrics(metrics_service: MetricsTracker = Depends(get_metrics)) -> Dict[str, object]:
    return metrics_service.snapshot()


@app.get("/structured-tables")
def structured_tables(sql_service: SQLService = Depends(get_sql_service)) -> Dict[str, List[str]]:
    return {"tables": sql_service.available_tables()}


@app.post(
    "/chat",
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def chat(payload: ChatRequest, router: QuestionRouter = Depends(get_router)):
    try:
        result = await router.route(payload.question, payload.session_id)
    except Exception:
        LOGGER.exception("chat_request failed session=%s", payload.session_id or "-")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error=INTERNAL_ERROR).model_dump(),
        )
    return ChatResponse(answer=result.answer, intent=result.intent.value, source=result.source)
