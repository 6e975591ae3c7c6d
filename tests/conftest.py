"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, insert, select

from books_api.config import ServiceConfig
from books_api.main import create_app
from books_api.models import Book
from storage import BookGateway, build_books_table

TEST_API_KEY = "test-api-key"


@pytest.fixture
def db_path(tmp_path):
    """Create an empty book table in a temporary SQLite file."""
    path = tmp_path / "books.db"
    engine = create_engine(f"sqlite:///{path}")
    build_books_table().metadata.create_all(engine)
    engine.dispose()
    return path


@pytest.fixture
def database_url(db_path):
    """Async URL for the temporary database."""
    return f"sqlite+aiosqlite:///{db_path}"


@pytest.fixture
def table_rows(db_path):
    """Read the table directly, bypassing the service."""
    def read():
        engine = create_engine(f"sqlite:///{db_path}")
        table = build_books_table()
        try:
            with engine.connect() as conn:
                return [dict(row._mapping) for row in conn.execute(select(table).order_by(table.c.id))]
        finally:
            engine.dispose()
    return read


@pytest.fixture
def seed_books(db_path):
    """Insert rows into the table before the service starts."""
    def seed(*books):
        engine = create_engine(f"sqlite:///{db_path}")
        table = build_books_table()
        try:
            with engine.begin() as conn:
                for title, author, year in books:
                    conn.execute(
                        insert(table).values(
                            title=title,
                            author=author,
                            year=year,
                            regdate=datetime(2024, 1, 1, 9, 30, 0),
                        )
                    )
        finally:
            engine.dispose()
    return seed


@pytest.fixture
def service_config(database_url):
    """Configuration pointing at the temporary database."""
    return ServiceConfig(
        db_server="localhost",
        db_user="sa",
        db_password="secret",
        db_port=1433,
        db_name="books",
        database_url=database_url,
        db_schema="",
        api_key=TEST_API_KEY,
        log_format="console",
    )


@pytest.fixture
def client(service_config):
    """Test client with the application lifespan running."""
    with TestClient(create_app(service_config)) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    """Headers carrying the configured API key."""
    return {"X-API-Key": TEST_API_KEY}


@pytest.fixture
def sample_book():
    """A book as the gateway would decode it."""
    return Book(
        id="1",
        title="Dune",
        author="Herbert",
        year=1965,
        registration_timestamp="2024-01-01 09:30:00",
    )


@pytest.fixture
def mock_gateway(sample_book):
    """Create a mock gateway for handler tests."""
    gateway = AsyncMock(spec=BookGateway)
    gateway.insert.return_value = sample_book.id
    gateway.query_by_id.return_value = sample_book
    gateway.query_latest.return_value = sample_book
    gateway.update_by_id.return_value = 1
    gateway.delete_by_id.return_value = 1
    gateway.scan_all.return_value = []
    return gateway
