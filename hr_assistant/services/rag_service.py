from __future__ import annotations

import csv
import itertools
import logging
import uuid
from pathlib import Path
from typing import Dict, List, Optional

import chromadb
from chromadb.errors import ChromaError
from chromadb.utils import embedding_functions


LOGGER = logging.getLogger(__name__)


def chunk_text(text: str, chunk_size: int = 1000, overlap: int = 200) -> List[str]:
    """Chunk text into overlapping segments suitable for embedding."""
    sanitized = " ".join(text.split())
    if not sanitized:
        return []
    if len(sanitized) <= chunk_size:
        return [sanitized]

    chunks: List[str] = []
    start = 0
    text_length = len(sanitized)
    while start < text_length:
        end = min(text_length, start + chunk_size)
        chunk = sanitized[start:end].strip()
        if chunk:
            chunks.append(chunk)
        if end == text_length:
            break
        start = max(0, end - overlap)
    return chunks


def read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def read_csv(path: Path) -> str:
    with path.open("r", encoding="utf-8", newline="") as csvfile:
        reader = csv.reader(csvfile)
        rows = list(reader)
    if not rows:
        return ""
    return "\n".join(" | ".join(row) for row in rows)


FILE_READERS = {
    ".md": read_text,
    ".markdown": read_text,
    ".txt": read_text,
    ".csv": read_csv,
}


class RAGService:
    """Handles document ingestion, vector indexing, and retrieval."""

    def __init__(
        self,
        documents_dir: Path,
        persist_directory: Path,
        collection_name: str = "hr_documents",
        embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2",
        top_k: int = 4,
        client: Optional[chromadb.ClientAPI] = None,
        embedding_function: Optional[embedding_functions.EmbeddingFunction] = None,
    ) -> None:
        self.documents_dir = documents_dir
        self.persist_directory = persist_directory
        self.collection_name = collection_name
        self.embedding_model = embedding_model
        self.top_k = top_k

        if embedding_function is None:
            embedding_function = embedding_functions.SentenceTransformerEmbeddingFunction(
                model_name=self.embedding_model
            )
        self.embedding_function = embedding_function
        if client is None:
            self.persist_directory.mkdir(parents=True, exist_ok=True)
            client = chromadb.PersistentClient(path=str(self.persist_directory))
        self.client = client
        # Always start with a clean collection to keep embeddings in sync with disk files
        self._recreate_collection()

    def _recreate_collection(self) -> None:
        try:
            self.client.delete_collection(self.collection_name)
        except (ValueError, ChromaError):
            pass
        self.collection = self.client.create_collection(
            name=self.collection_name,
            embedding_function=self.embedding_function,
            metadata={"hnsw:space": "cosine"},
        )

    def build(self) -> int:
        """Load documents from disk, index them and return the number of chunks."""
        documents: List[str] = []
        metadatas: List[Dict[str, str]] = []
        ids: List[str] = []

        if not self.documents_dir.exists():
            LOGGER.warning("Documents directory %s does not exist. Skipping ingestion.", self.documents_dir)
            return 0

        for file_path in sorted(self.documents_dir.rglob("*")):
            if file_path.is_dir():
                continue
            reader = FILE_READERS.get(file_path.suffix.lower())
            if not reader:
                LOGGER.warning("Unsupported file type for %s. Skipping.", file_path)
                continue
            try:
                text = reader(file_path)
            except (OSError, UnicodeDecodeError) as exc:
                LOGGER.warning("Failed to read %s: %s", file_path, exc)
                continue
            relative_source = file_path.relative_to(self.documents_dir).as_posix()
            for chunk_index, chunk in enumerate(chunk_text(text)):
                documents.append(chunk)
                metadatas.append({"source": relative_source, "chunk_index": str(chunk_index)})
                ids.append(f"{file_path.stem}-{uuid.uuid4()}")

        if documents:
            self.collection.add(documents=documents, metadatas=metadatas, ids=ids)
            LOGGER.info("Loaded %d chunks into collection %s", len(documents), self.collection_name)
        else:
            LOGGER.warning("No documents were ingested from %s.", self.documents_dir)
        return len(documents)

    def retrieve(self, question: str, top_k: Optional[int] = None) -> List[Dict[str, object]]:
        """Return up to ``top_k`` documents ranked by relevance, or an empty list."""
        if not (question or "").strip():
            return []
        indexed = self.collection.count()
        if indexed == 0:
            return []
        result = self.collection.query(
            query_texts=[question],
            n_results=min(top_k or self.top_k, indexed),
        )

        documents = (result.get("documents") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0]
        distances = (result.get("distances") or [[]])[0]

        payload: List[Dict[str, object]] = []
        for content, metadata, distance in itertools.zip_longest(documents, metadatas, distances):
            if not content:
                continue
            entry_metadata = dict(metadata or {})
            if distance is not None:
                entry_metadata["score"] = max(0.0, min(1.0, 1 - float(distance)))
            payload.append({"content": content, "metadata": entry_metadata})
        return payload
