# apps/backend/database.py
"""
Storage for the entitlement backend.

Holds three tables, all keyed by the auth user id:
  - customers               user -> Stripe customer link (filled once)
  - subscribers             subscription state written by the Stripe webhook
  - verification_attempts   one-time phone codes

Production runs on Postgres. Local dev and the test suite use SQLite.
"""
from __future__ import annotations

import os
import logging
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session

logger = logging.getLogger(__name__)


def _normalize_url(url: str) -> str:
    # Supabase / Heroku hand out postgres:// URLs; we ship the psycopg 3 driver
    if url.startswith("postgres://"):
        return "postgresql+psycopg://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+psycopg://" + url[len("postgresql://"):]
    return url


DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("Missing DATABASE_URL environment variable")
DATABASE_URL = _normalize_url(DATABASE_URL)

DB_ECHO = os.getenv("DB_ECHO", "false").lower() in ("1", "true", "yes")

_connect_args: Dict[str, Any] = {}
if DATABASE_URL.startswith("sqlite"):
    # FastAPI runs sync handlers in a threadpool
    _connect_args["check_same_thread"] = False

engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    echo=DB_ECHO,
    connect_args=_connect_args,
    future=True,
)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    future=True,
)


class Base(DeclarativeBase):
    pass


def init_db() -> None:
    """Create missing tables (customers, subscribers, verification_attempts)."""
    from linguista import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Tables ready on %s", engine.url.render_as_string(hide_password=True))


def get_db() -> Generator[Session, None, None]:
    """
    One session per request. Anything left uncommitted when the handler
    raises is rolled back before the session goes back to the pool.
    """
    db: Session = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
