from __future__ import annotations

from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from threading import Lock
from typing import List, Optional, Sequence, Tuple


MAX_HISTORY_MESSAGES = 12


@dataclass(frozen=True)
class HistoryTurn:
    role: str
    content: str


@dataclass(frozen=True)
class QueryDescriptor:
    """Last executed database query, kept so the user can page through it."""

    sql: str
    original_question: str
    offset: int = 0
    limit: int = 50
    params: Tuple[object, ...] = ()

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError("offset must be >= 0")
        if self.limit <= 0:
            raise ValueError("limit must be > 0")


@dataclass
class Session:
    key: Optional[str]
    history: List[HistoryTurn] = field(default_factory=list)
    last_database_query: Optional[QueryDescriptor] = None


class SessionStore(ABC):
    """Keyed conversation state consumed by the router."""

    @abstractmethod
    def get_or_create(self, session_id: Optional[str]) -> Session:
        ...

    @abstractmethod
    def append_history(self, session: Session, role: str, content: str) -> None:
        ...

    @abstractmethod
    def history(self, session: Session) -> Sequence[HistoryTurn]:
        ...

    @abstractmethod
    def get_last_query(self, session: Session) -> Optional[QueryDescriptor]:
        ...

    @abstractmethod
    def set_last_query(self, session: Session, descriptor: QueryDescriptor) -> None:
        ...


class InMemorySessionStore(SessionStore):
    """Thread-safe in-process session map with LRU eviction of idle sessions."""

    def __init__(self, max_sessions: int = 1024, max_history: int = MAX_HISTORY_MESSAGES) -> None:
        self.max_sessions = max_sessions
        self.max_history = max_history
        self._sessions: OrderedDict[str, Session] = OrderedDict()
        self._lock = Lock()

    def get_or_create(self, session_id: Optional[str]) -> Session:
        if not session_id:
            # Anonymous requests get a throwaway session that is never stored.
            return Session(key=None)
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(key=session_id)
                self._sessions[session_id] = session
                if len(self._sessions) > self.max_sessions:
                    self._sessions.popitem(last=False)
            self._sessions.move_to_end(session_id)
            return session

    def append_history(self, session: Session, role: str, content: str) -> None:
        if not content:
            return
        with self._lock:
            session.history.append(HistoryTurn(role=role, content=content))
            overflow = len(session.history) - self.max_history
            if overflow > 0:
                del session.history[:overflow]

    def get_last_query(self, session: Session) -> Optional[QueryDescriptor]:
        return session.last_database_query

    def set_last_query(self, session: Session, descriptor: QueryDescriptor) -> None:
        with self._lock:
            session.last_database_query = descriptor

    def history(self, session: Session) -> Sequence[HistoryTurn]:
        with self._lock:
            return list(session.history)

    def size(self) -> int:
        with self._lock:
            return len(self._sessions)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
