"""Database engine and session factory for the billing service."""

import os
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./billing.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # payments and credit notes reference invoices; sqlite ships with FK checks off
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str = DATABASE_URL, **kwargs) -> Engine:
    connect_args = dict(kwargs.pop("connect_args", {}))
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        connect_args.setdefault("check_same_thread", False)
    else:
        kwargs.setdefault("pool_pre_ping", True)
    db_engine = create_engine(url, connect_args=connect_args, echo=SQL_ECHO, future=True, **kwargs)
    if is_sqlite:
        event.listen(db_engine, "connect", _enable_sqlite_foreign_keys)
    return db_engine


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)

Base = declarative_base()


def init_db(bind: Optional[Engine] = None) -> None:
    from backend import db_models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
