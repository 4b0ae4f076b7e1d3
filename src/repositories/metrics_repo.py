"""Persistence for historical accuracy figures."""

from __future__ import annotations

from abc import ABC, abstractmethod
from threading import Lock
from typing import Optional

from models.metrics import PerformanceMetrics
from repositories.sql_repo import SqlRepository

METRICS_KEY = "performance"

METRICS_DDL = """
CREATE TABLE IF NOT EXISTS triage_metrics (
    name VARCHAR(64) PRIMARY KEY,
    payload TEXT NOT NULL
)
"""


class MetricsStore(ABC):
    @abstractmethod
    def load(self) -> PerformanceMetrics:
        """Current figures, or the defaults when nothing was saved yet."""

    @abstractmethod
    def save(self, metrics: PerformanceMetrics) -> None:
        ...


class InMemoryMetricsStore(MetricsStore):
    def __init__(self, metrics: Optional[PerformanceMetrics] = None):
        self._metrics = metrics or PerformanceMetrics()
        self._lock = Lock()

    def load(self) -> PerformanceMetrics:
        with self._lock:
            return self._metrics.model_copy(deep=True)

    def save(self, metrics: PerformanceMetrics) -> None:
        with self._lock:
            self._metrics = metrics.model_copy(deep=True)


class SqlMetricsStore(MetricsStore):
    """Single JSON row in triage_metrics."""

    def __init__(self, repo: SqlRepository, name: str = METRICS_KEY):
        self.repo = repo
        self.name = name

    def create_schema(self) -> None:
        self.repo.execute(METRICS_DDL)

    def load(self) -> PerformanceMetrics:
        row = self.repo.fetch_one(
            "SELECT payload FROM triage_metrics WHERE name = :name", {"name": self.name}
        )
        if not row:
            return PerformanceMetrics()
        return PerformanceMetrics.model_validate_json(row["payload"])

    def save(self, metrics: PerformanceMetrics) -> None:
        self.repo.execute_many(
            [
                ("DELETE FROM triage_metrics WHERE name = :name", {"name": self.name}),
                (
                    "INSERT INTO triage_metrics (name, payload) VALUES (:name, :payload)",
                    {"name": self.name, "payload": metrics.model_dump_json()},
                ),
            ]
        )
