"""Pytest configuration and shared fixtures."""

import os
import tempfile
from pathlib import Path

import pytest
from alembic.config import Config

from alembic import command

ALEMBIC_INI = Path(__file__).resolve().parent.parent / "alembic.ini"


@pytest.fixture(scope="function")
def temp_db_path():
    """Create a temporary database file for testing."""
    with tempfile.NamedTemporaryFile(delete=False, suffix=".db") as tmp:
        db_path = tmp.name
    yield db_path
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.remove(db_path + suffix)


@pytest.fixture(scope="function")
def test_db_schema(temp_db_path):
    """Create test database schema using Alembic migration."""
    alembic_config = Config(str(ALEMBIC_INI))
    alembic_config.set_main_option(
        "sqlalchemy.url", f"sqlite:///{os.path.abspath(temp_db_path)}"
    )
    command.upgrade(alembic_config, "head")
    yield temp_db_path


@pytest.fixture(scope="function")
def test_db(test_db_schema):
    """Create a Database instance for testing."""
    from recordkit.database import Database

    db = Database(db_path=test_db_schema, encryption_key=None)
    return db


@pytest.fixture(scope="function")
def bound_db(test_db):
    """Bind the test database to every record class."""
    from recordkit.models import ActiveRecord

    ActiveRecord.use_database(test_db)
    yield test_db
    ActiveRecord.use_database(None)


@pytest.fixture
def sample_customer():
    """Sample customer data."""
    return {
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "status": 1,
    }


@pytest.fixture
def sample_account():
    """Sample account data."""
    return {
        "id": "U1234567",
        "name": "Individual Account",
        "base_currency": "USD",
    }
