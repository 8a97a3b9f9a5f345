from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent


def _int_from_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_from_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _list_from_env(key: str) -> Tuple[str, ...]:
    raw = os.getenv(key, "")
    return tuple(item.strip().lower() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    groq_api_key: Optional[str]
    llm_model: str
    llm_temperature: float
    rag_top_k: int
    rag_max_context_chars: int
    database_path: Path
    db_pool_size: int
    sql_timeout_seconds: float
    default_row_limit: int
    allowed_tables: Tuple[str, ...]
    documents_dir: Path
    vector_store_dir: Path
    embedding_model: str
    max_history_messages: int
    cors_origins: Tuple[str, ...]


def get_settings() -> Settings:
    return Settings(
        groq_api_key=os.getenv("GROQ_API_KEY") or None,
        llm_model=os.getenv("LLM_MODEL", "llama-3.1-8b-instant"),
        llm_temperature=_float_from_env("LLM_TEMPERATURE", 0.1),
        rag_top_k=_int_from_env("RAG_TOP_K", 4),
        rag_max_context_chars=_int_from_env("RAG_MAX_CONTEXT_CHARS", 8000),
        database_path=Path(os.getenv("DATABASE_PATH", str(BASE_DIR / "resources" / "hr.duckdb"))),
        db_pool_size=_int_from_env("DB_POOL_SIZE", 10),
        sql_timeout_seconds=_float_from_env("SQL_TIMEOUT_SECONDS", 3.0),
        default_row_limit=_int_from_env("DEFAULT_ROW_LIMIT", 50),
        # Empty means the built-in allow-list in semantic_schema is used
        allowed_tables=_list_from_env("ALLOWED_TABLES"),
        documents_dir=Path(os.getenv("DOCUMENTS_DIR", str(BASE_DIR / "resources" / "documents"))),
        vector_store_dir=Path(os.getenv("VECTOR_STORE_DIR", str(BASE_DIR / "storage" / "vector_store"))),
        embedding_model=os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2"),
        max_history_messages=_int_from_env("MAX_HISTORY_MESSAGES", 12),
        cors_origins=tuple(
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
            if origin.strip()
        ),
    )
