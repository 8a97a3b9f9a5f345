from __future__ import annotations

import logging
import re
import textwrap
from typing import Dict, List, Optional, Sequence, Tuple

from groq import APIError, Groq

from .session_store import HistoryTurn


LOGGER = logging.getLogger(__name__)

HISTORY_EXCERPT_TURNS = 10

RAG_SYSTEM_PROMPT_WITH_CONTEXT = """You are a helpful and friendly AI assistant for the company. Your role is to answer questions based on the provided context from company documents and knowledge base.

Guidelines:
- Use the context provided below to answer questions accurately and helpfully
- If the context contains relevant information, provide a clear, user-friendly answer
- If the context doesn't fully answer the question, provide what you can from the context and politely mention if additional information might be needed
- Be conversational, warm, and professional

Context from knowledge base:
{context}

Conversation history (most recent first):
{history}"""

RAG_SYSTEM_PROMPT_NO_CONTEXT = """You are a helpful and friendly AI assistant for the company.

The user asked: {question}

Conversation history (most recent first):
{history}

Since no specific information about this was found in the knowledge base, provide a friendly, helpful response. You can:
- Acknowledge that the specific information isn't in the knowledge base
- Offer to help with related topics that might be in the knowledge base
- Be conversational and helpful"""

NO_CONTEXT_FALLBACK = "I could not find relevant information in the accessible documents."

STOPWORDS = {
    "what",
    "was",
    "were",
    "the",
    "this",
    "that",
    "with",
    "from",
    "into",
    "does",
    "have",
    "has",
    "had",
    "about",
    "which",
    "where",
    "when",
    "please",
    "give",
    "show",
    "tell",
    "much",
    "many",
    "our",
    "your",
}


class LLMServiceError(Exception):
    """Raised when the text-completion backend is unavailable or fails."""


def build_history_text(history: Sequence[HistoryTurn], max_turns: int = HISTORY_EXCERPT_TURNS) -> str:
    """Render the most recent turns, newest first, as ``User:``/``Assistant:`` lines."""
    lines: List[str] = []
    for turn in reversed(list(history)[-max_turns:]):
        content = (turn.content or "").strip()
        if not content:
            continue
        label = "Assistant" if turn.role == "assistant" else "User"
        lines.append(f"{label}: {content}")
    return "\n".join(lines)


class LLMService:
    """Wrapper around the Groq chat completion API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = "llama-3.1-8b-instant",
        temperature: float = 0.1,
        max_context_chars: int = 8000,
    ) -> None:
        self.model_name = model_name
        self.temperature = temperature
        self.max_context_chars = max_context_chars
        self.api_key = api_key
        self._client = Groq(api_key=api_key) if api_key else None

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def complete(
        self,
        system_prompt: str,
        messages: Sequence[Dict[str, str]] = (),
        temperature: Optional[float] = None,
    ) -> str:
        """Run one chat completion and return the stripped text."""
        if not self.is_configured:
            raise LLMServiceError("LLM generation is unavailable (missing GROQ_API_KEY).")

        payload = [{"role": "system", "content": system_prompt}, *messages]
        try:
            response = self._client.chat.completions.create(
                model=self.model_name,
                temperature=self.temperature if temperature is None else temperature,
                messages=payload,
            )
        except APIError as exc:
            LOGGER.warning("Groq completion failed: %s", exc)
            raise LLMServiceError(f"Completion request failed: {exc}") from exc

        content = response.choices[0].message.content if response.choices else None
        return (content or "").strip()

    def answer_from_documents(
        self,
        question: str,
        documents: Sequence[dict],
        history: Sequence[HistoryTurn] = (),
    ) -> str:
        """Answer a question from retrieved documents, or without context when none were found."""
        context = self.build_context(documents, self.max_context_chars)
        history_text = build_history_text(history) or "(none)"
        if context:
            system_prompt = RAG_SYSTEM_PROMPT_WITH_CONTEXT.format(context=context, history=history_text)
        else:
            system_prompt = RAG_SYSTEM_PROMPT_NO_CONTEXT.format(question=question, history=history_text)

        try:
            return self.complete(system_prompt, [{"role": "user", "content": question}])
        except LLMServiceError:
            return self._offline_answer(question, documents)

    @staticmethod
    def build_context(documents: Sequence[dict], max_chars: int) -> str:
        if not documents:
            return ""
        serialized = "\n\n---\n\n".join(
            f"[Source {idx}]\n{document.get('content', '')}"
            for idx, document in enumerate(documents, start=1)
        )
        if len(serialized) > max_chars:
            return f"{serialized[:max_chars]}..."
        return serialized

    def _offline_answer(self, question: str, documents: Sequence[dict]) -> str:
        if not documents:
            return NO_CONTEXT_FALLBACK

        answer_sentence, source = self._extract_answer(question, documents)
        if answer_sentence:
            lines = [
                answer_sentence.strip(),
                f"(source: {source or 'unknown source'})",
                "",
                "LLM generation is unavailable.",
            ]
            return "\n".join(lines)

        summary_lines = [
            "Key points from the knowledge base:",
        ]
        for document in documents:
            snippet = textwrap.shorten(document.get("content", ""), width=180, placeholder="...")
            summary_lines.append(f"- {snippet} (source: {_source_of(document)})")
        summary_lines.append("LLM generation is unavailable.")
        return "\n".join(summary_lines)

    @staticmethod
    def _extract_answer(question: str, documents: Sequence[dict]) -> Tuple[Optional[str], Optional[str]]:
        question_terms = {
            word
            for word in re.findall(r"\b\w+\b", question.lower())
            if len(word) > 3 and word not in STOPWORDS
        }
        if not question_terms:
            return None, None

        best_sentence: Optional[str] = None
        best_source: Optional[str] = None
        best_score = 0

        for document in documents:
            content = document.get("content", "")
            sentences = re.split(r"(?<=[.!?])\s+", content)
            for sentence in sentences:
                cleaned = sentence.strip()
                if not cleaned:
                    continue
                lower_sentence = cleaned.lower()
                score = sum(1 for term in question_terms if term in lower_sentence)
                if score > best_score:
                    best_sentence = cleaned
                    best_score = score
                    best_source = _source_of(document)

        if best_sentence and best_score > 0:
            return best_sentence, best_source

        return None, None


def _source_of(document: dict) -> str:
    metadata = document.get("metadata") or {}
    return metadata.get("source", "unknown source")
