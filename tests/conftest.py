"""
Pytest configuration and fixtures.

This file provides pytest-specific configuration and fixtures.
For standard test utilities, see tests/__init__.py
"""

import pytest


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "db: marks tests as requiring a database session"
    )


@pytest.fixture(autouse=True)
def no_dry_run(monkeypatch):
    """Channels must really call their (mocked) transports in tests."""
    monkeypatch.delenv("NOTIFICATION_DRY_RUN", raising=False)
    yield


@pytest.fixture
def db_session():
    """Session on a fresh in-memory database."""
    from tests import create_test_engine, create_test_session_factory

    engine = create_test_engine()
    session = create_test_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()

