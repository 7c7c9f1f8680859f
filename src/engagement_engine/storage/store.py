"""Row-level persistent store contract and an in-memory implementation."""

import copy
import threading
from typing import Dict, List, Optional, Any, Protocol

# Tables used by the engine
USERS = "users"
LEAD_SCORES = "lead_scores"
TOOL_USAGE = "tool_usage"
SESSION_SUMMARIES = "session_summaries"
ATTRIBUTION = "attribution"
SCORE_EVENTS = "score_events"

TABLES = (USERS, LEAD_SCORES, TOOL_USAGE, SESSION_SUMMARIES, ATTRIBUTION, SCORE_EVENTS)


class Store(Protocol):
    """Key-addressable row store. Rows are plain JSON-compatible dicts."""

    def get(self, table: str, key: str) -> Optional[Dict[str, Any]]: ...

    def upsert(self, table: str, key: str, row: Dict[str, Any]) -> None: ...

    def rows(self, table: str) -> List[Dict[str, Any]]: ...

    def ping(self) -> bool: ...


class InMemoryStore:
    """Dict-backed store for tests and single-process deployments."""

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def get(self, table: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._tables.get(table, {}).get(key)
            return copy.deepcopy(row) if row is not None else None

    def upsert(self, table: str, key: str, row: Dict[str, Any]) -> None:
        with self._lock:
            self._tables.setdefault(table, {})[key] = copy.deepcopy(row)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._tables.get(table, {}).values()]

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._tables.get(table, {}))

    def ping(self) -> bool:
        return True
