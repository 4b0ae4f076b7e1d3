"""SQL repository helpers using SQLAlchemy Core."""

import json
import os
from typing import Any, List, Optional

import boto3
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool

from utils.logging_config import get_logger

logger = get_logger(__name__)


def engine_from_url(url: str) -> Engine:
    """Small pool; Lambda containers handle one request at a time."""
    if url.startswith("sqlite"):
        return create_engine(url)
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=1,
        max_overflow=2,
        pool_pre_ping=True,
        pool_recycle=300,
    )


def resolve_database_url() -> Optional[str]:
    """DATABASE_URL wins; otherwise build one from the RDS secret in DB_SECRET_ARN."""
    db_url = os.environ.get("DATABASE_URL")
    if db_url:
        return db_url
    secret_arn = os.environ.get("DB_SECRET_ARN")
    if not secret_arn:
        return None
    try:
        sm = boto3.client("secretsmanager")
        secret = json.loads(sm.get_secret_value(SecretId=secret_arn)["SecretString"])
    except Exception as exc:
        logger.warning("Failed to load DB secret", extra={"error": str(exc)})
        return None
    host = secret.get("host")
    username = secret.get("username")
    password = secret.get("password")
    if not (host and username and password):
        return None
    port = secret.get("port", 5432)
    dbname = secret.get("dbname", "postgres")
    return f"postgresql+psycopg2://{username}:{password}@{host}:{port}/{dbname}"


class SqlRepository:
    """Thin wrapper to keep SQL organized and parameterized."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def fetch_one(self, query: str, params: Optional[dict] = None) -> Optional[dict]:
        """Execute a SELECT and return one row as dict."""
        with self.engine.connect() as conn:
            row = conn.execute(text(query), params or {}).fetchone()
            return dict(row._mapping) if row else None

    def fetch_all(self, query: str, params: Optional[dict] = None) -> List[dict]:
        with self.engine.connect() as conn:
            rows = conn.execute(text(query), params or {}).fetchall()
            return [dict(row._mapping) for row in rows]

    def execute(self, query: str, params: Optional[dict] = None) -> Any:
        """Execute a parameterized statement."""
        with self.engine.begin() as conn:
            return conn.execute(text(query), params or {})

    def execute_many(self, statements: List[tuple]) -> None:
        """Run (query, params) pairs in one transaction."""
        with self.engine.begin() as conn:
            for query, params in statements:
                conn.execute(text(query), params or {})
