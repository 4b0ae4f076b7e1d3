"""Suggestion stores."""

from __future__ import annotations

from abc import ABC, abstractmethod
from threading import Lock
from typing import Dict, Optional

from models.suggestion import Suggestion


class SuggestionStore(ABC):
    @abstractmethod
    def save(self, suggestion: Suggestion) -> None:
        ...

    @abstractmethod
    def get(self, suggestion_id: str) -> Optional[Suggestion]:
        ...

    @abstractmethod
    def latest_for_ticket(self, ticket_id: str) -> Optional[Suggestion]:
        """Most recently created suggestion for a ticket."""
        ...


class InMemorySuggestionStore(SuggestionStore):
    def __init__(self) -> None:
        self._items: Dict[str, Suggestion] = {}
        self._latest: Dict[str, str] = {}
        self._lock = Lock()

    def save(self, suggestion: Suggestion) -> None:
        with self._lock:
            # Re-saving after a review must not make an older run the latest.
            if suggestion.id not in self._items:
                self._latest[suggestion.ticket_id] = suggestion.id
            self._items[suggestion.id] = suggestion.model_copy(deep=True)

    def get(self, suggestion_id: str) -> Optional[Suggestion]:
        with self._lock:
            item = self._items.get(suggestion_id)
        return item.model_copy(deep=True) if item else None

    def latest_for_ticket(self, ticket_id: str) -> Optional[Suggestion]:
        with self._lock:
            suggestion_id = self._latest.get(ticket_id)
        return self.get(suggestion_id) if suggestion_id else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
