"""Repositories for engine-owned state.

Engine state is a handful of independent JSON documents per user profile
(recommendations log, modifications log, analytics log, preferences and the
last analysis timestamp). Components receive repositories built on a
``DocumentStore`` and never touch storage directly, so tests can swap in
``MemoryDocumentStore``.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from ..models import AdaptivePreferences
from .database import Database
from .models import EngineDocument

logger = logging.getLogger(__name__)

T = TypeVar("T")

RECOMMENDATIONS_KEY = "adaptive_recommendations"
MODIFICATIONS_KEY = "plan_modifications"
ANALYTICS_KEY = "recommendation_analytics"
PREFERENCES_KEY = "adaptive_preferences"
LAST_ANALYSIS_KEY = "last_analysis"


class DocumentStore(ABC):
    """Raw key-value storage of JSON text, namespaced by user profile."""

    def __init__(self, user_id: str = "default"):
        self.user_id = user_id

    @abstractmethod
    def read_raw(self, key: str) -> Optional[str]:
        """Return the stored text for ``key`` or None."""

    @abstractmethod
    def write_raw(self, key: str, payload: str) -> None:
        """Replace the stored text for ``key``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    def read(self, key: str, default: Any = None) -> Any:
        """Read and decode a document. Corrupted documents load as ``default``."""
        raw = self.read_raw(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Corrupted document '{key}' for user {self.user_id}: {e}")
            return default

    def write(self, key: str, value: Any) -> None:
        self.write_raw(key, json.dumps(value))


class MemoryDocumentStore(DocumentStore):
    """In-process document store for tests and dry runs."""

    def __init__(self, user_id: str = "default"):
        super().__init__(user_id)
        self._documents: Dict[str, str] = {}

    def read_raw(self, key: str) -> Optional[str]:
        return self._documents.get(key)

    def write_raw(self, key: str, payload: str) -> None:
        self._documents[key] = payload

    def delete(self, key: str) -> None:
        self._documents.pop(key, None)


class SqlDocumentStore(DocumentStore):
    """Document store persisted in the ``engine_documents`` table."""

    def __init__(self, db: Database, user_id: str = "default"):
        super().__init__(user_id)
        self.db = db

    def read_raw(self, key: str) -> Optional[str]:
        with self.db.get_session() as session:
            document = (
                session.query(EngineDocument)
                .filter_by(user_id=self.user_id, key=key)
                .first()
            )
            return document.payload if document else None

    def write_raw(self, key: str, payload: str) -> None:
        with self.db.get_session() as session:
            document = (
                session.query(EngineDocument)
                .filter_by(user_id=self.user_id, key=key)
                .first()
            )
            if document:
                document.payload = payload
            else:
                session.add(EngineDocument(user_id=self.user_id, key=key, payload=payload))

    def delete(self, key: str) -> None:
        with self.db.get_session() as session:
            session.query(EngineDocument).filter_by(user_id=self.user_id, key=key).delete()


class ListRepository(Generic[T]):
    """An append-mostly log stored as one JSON list."""

    def __init__(
        self,
        store: DocumentStore,
        key: str,
        decode: Callable[[Dict[str, Any]], T],
        encode: Callable[[T], Dict[str, Any]],
    ):
        self.store = store
        self.key = key
        self._decode = decode
        self._encode = encode

    def load(self) -> List[T]:
        raw = self.store.read(self.key, default=[])
        if not isinstance(raw, list):
            logger.warning(f"Document '{self.key}' is not a list; treating as empty")
            return []

        items = []
        for entry in raw:
            try:
                items.append(self._decode(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable entry in '{self.key}': {e}")
        return items

    def save(self, items: List[T]) -> None:
        self.store.write(self.key, [self._encode(item) for item in items])


class PreferencesRepository:
    """The adaptive recommendation preferences record."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def load(self) -> AdaptivePreferences:
        raw = self.store.read(PREFERENCES_KEY, default={})
        if not isinstance(raw, dict):
            return AdaptivePreferences()
        return AdaptivePreferences.from_dict(raw)

    def save(self, preferences: AdaptivePreferences) -> None:
        self.store.write(PREFERENCES_KEY, preferences.to_dict())


class TimestampRepository:
    """A single timestamp scalar, e.g. when the last analysis pass ran."""

    def __init__(self, store: DocumentStore, key: str = LAST_ANALYSIS_KEY):
        self.store = store
        self.key = key

    def load(self) -> Optional[datetime]:
        raw = self.store.read(self.key)
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except (TypeError, ValueError):
            logger.warning(f"Unreadable timestamp in '{self.key}': {raw!r}")
            return None

    def save(self, value: datetime) -> None:
        self.store.write(self.key, value.isoformat())
