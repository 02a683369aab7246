"""Shared fixtures for suppliercanvas tests."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from suppliercanvas import models  # noqa: F401
from suppliercanvas.db import Base


@pytest.fixture
def session_factory():
    """In-memory SQLite shared across threads (cache runs sessions via asyncio.to_thread)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    yield factory
    engine.dispose()
