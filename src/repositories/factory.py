"""
Store construction for the Lambdas.

Connection pooling is sized for Lambda reuse. When no database is configured
the factory falls back to the in-memory store so the handlers stay runnable
in dev.
"""

from __future__ import annotations

import json
from typing import Optional

import boto3
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool

from repositories.base import TicketStore
from repositories.memory_store import InMemoryTicketStore
from repositories.sql_store import SqlTicketStore
from utils.logging_config import get_logger
from utils.settings import Settings

logger = get_logger(__name__)

_engine: Optional[Engine] = None


def get_db_engine(settings: Settings) -> Optional[Engine]:
    """Get or create SQLAlchemy engine with connection pooling."""
    global _engine
    if _engine is None:
        db_url = settings.database_url
        if not db_url and settings.db_secret_arn:
            db_url = _secret_to_db_url(settings.db_secret_arn)
        if not db_url:
            logger.warning("DATABASE_URL not set; using in-memory ticket store")
            return None
        _engine = create_engine(
            db_url,
            poolclass=QueuePool,
            pool_size=1,
            max_overflow=2,
            pool_pre_ping=True,
            pool_recycle=300,
        )
    return _engine


def _secret_to_db_url(secret_arn: str) -> Optional[str]:
    """Build a SQLAlchemy URL from an RDS secret."""
    try:
        sm = boto3.client("secretsmanager")
        secret = json.loads(sm.get_secret_value(SecretId=secret_arn)["SecretString"])
    except Exception as exc:
        logger.warning("Failed to load DB secret", extra={"error": str(exc)})
        return None

    host = secret.get("host")
    port = secret.get("port", 5432)
    username = secret.get("username")
    password = secret.get("password")
    dbname = secret.get("dbname", "postgres")
    if not (host and username and password):
        return None
    return f"postgresql+psycopg2://{username}:{password}@{host}:{port}/{dbname}"


def build_ticket_store(settings: Settings) -> TicketStore:
    """SQL store when a database is reachable, otherwise the in-memory store."""
    engine = get_db_engine(settings)
    if engine is None:
        return InMemoryTicketStore(default_threshold=settings.default_confidence_threshold)
    return SqlTicketStore(engine)
