#!/usr/bin/env python3
"""
Test suite configuration and utilities.

Tests run against an in-memory SQLite database, so nothing external is
needed:

    # Run all tests
    python -m pytest tests/ -v

    # Using unittest
    python -m unittest discover tests -v

Every test gets a fresh schema through `create_test_engine()`; the session
scope returned by `make_test_session_scope()` shares that database with the
test's own session, so tasks run inline see the same rows.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database.database import make_session_scope
from database.models import Base


def create_test_engine():
    """
    In-memory SQLite engine with the schema created.

    pysqlite's own transaction handling breaks SAVEPOINT; the listeners hand
    BEGIN back to SQLAlchemy so nested transactions behave like PostgreSQL.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


def create_test_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def make_test_session_scope(engine):
    return make_session_scope(create_test_session_factory(engine))
