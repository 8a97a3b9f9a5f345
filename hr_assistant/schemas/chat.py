from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: StrictStr = Field(..., min_length=1, description="User's natural language question.")
    session_id: Optional[str] = Field(
        default=None,
        alias="sessionId",
        description="Conversation key; requests without a string key get no memory.",
    )

    @field_validator("question")
    @classmethod
    def question_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("question must not be blank")
        return value

    @field_validator("session_id", mode="before")
    @classmethod
    def session_id_must_be_string(cls, value: Any) -> Optional[str]:
        # Numbers, objects and the like are treated as an absent key.
        return value if isinstance(value, str) else None


class ChatResponse(BaseModel):
    answer: str = Field(..., description="Answer text, prefixed with where it came from.")
    intent: str = Field(..., description="DATABASE_QUERY, RAG_QUERY or GENERAL_CHAT.")
    source: str = Field(..., description="database, rag or general.")


class ErrorResponse(BaseModel):
    error: str
