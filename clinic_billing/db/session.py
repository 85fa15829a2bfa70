# clinic_billing/db/session.py
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from clinic_billing.core.config import settings


def engine_options(db_uri: str) -> Dict[str, Any]:
    opts: Dict[str, Any] = {"future": True, "echo": settings.SQL_ECHO}
    if db_uri.startswith("sqlite"):
        opts["connect_args"] = {"check_same_thread": False}
        return opts
    opts.update(
        pool_pre_ping=True,
        pool_recycle=280,
        pool_size=10,
        max_overflow=20,
    )
    return opts


def make_engine(db_uri: str) -> Engine:
    return create_engine(db_uri, **engine_options(db_uri))


engine: Engine = make_engine(settings.SQLALCHEMY_DATABASE_URI)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
)
