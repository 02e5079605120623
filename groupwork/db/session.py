from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from groupwork.core.config import get_settings

settings = get_settings()

DATABASE_URL = settings.database_url  # fail fast if missing

# sqlite (local runs, tests) hands connections across the request threadpool
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    echo=settings.database_echo,
    connect_args=_connect_args,
    future=True,
)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        # anything not committed by a service (failed operation) is discarded here
        db.close()
