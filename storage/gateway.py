"""
Persistence gateway for the book table.
Issues every SQL statement the service runs, using bound parameters only.
"""

from typing import List, Optional, Union

import structlog
from sqlalchemy import delete, func, insert, literal_column, select, text, update
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from books_api.errors import PersistenceError
from books_api.models import Book

from .schema import REQUIRED_COLUMNS, build_books_table, row_to_book

logger = structlog.get_logger(__name__)

# Signed 64-bit range of the integer key column
MIN_KEY = -2 ** 63
MAX_KEY = 2 ** 63 - 1

# SQLAlchemy errors plus binding errors the DBAPI raises unwrapped
DATABASE_ERRORS = (SQLAlchemyError, OverflowError)


def _driver_message(error: Exception) -> str:
    """Prefer the DBAPI error text over SQLAlchemy's wrapper."""
    original = getattr(error, "orig", None)
    return str(original) if original is not None else str(error)


def _parse_id(book_id: str) -> Optional[int]:
    """
    Convert a client-supplied id to the integer key column.

    Only the canonical decimal form is accepted ("5", not "05" or " 5"),
    so an id that resolves to a row always equals the cached id string.
    Values outside the key column's range cannot match a row.
    """
    try:
        parsed = int(book_id)
    except (TypeError, ValueError):
        return None
    if str(parsed) != book_id or not MIN_KEY <= parsed <= MAX_KEY:
        return None
    return parsed


class BookGateway:
    """
    Async gateway to the relational book table.
    The database is the source of truth; this class never retries.
    """

    def __init__(
        self,
        database_url: Union[str, URL],
        table_name: str = "tbl_book",
        schema: Optional[str] = None,
        echo: bool = False
    ):
        """
        Initialize the gateway.

        Args:
            database_url: SQLAlchemy async database URL
            table_name: Name of the book table
            schema: Schema qualifying the table, or None
            echo: Log every SQL statement (debugging only)
        """
        self.database_url = database_url
        self.table = build_books_table(table_name, schema)
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None

    @property
    def _columns(self):
        c = self.table.c
        return (c.id, c.title, c.author, c.year, c.regdate)

    def _require_engine(self) -> AsyncEngine:
        if self.engine is None:
            raise PersistenceError("Database is not connected")
        return self.engine

    async def connect(self) -> None:
        """Create the engine and verify the database answers."""
        engine = create_async_engine(
            self.database_url,
            pool_pre_ping=True,
            echo=self.echo,
        )
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except DATABASE_ERRORS as e:
            await engine.dispose()
            logger.error("Failed to connect to database", error=_driver_message(e))
            raise PersistenceError(f"Database connection failed: {_driver_message(e)}") from e

        self.engine = engine
        logger.info(
            "Successfully connected to database",
            dialect=self.engine.dialect.name,
            table=self.table.fullname,
        )

    async def disconnect(self) -> None:
        """Dispose of the connection pool."""
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            logger.info("Disconnected from database")

    async def ping(self) -> bool:
        """Return True when the database answers a trivial query."""
        if self.engine is None:
            return False
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except DATABASE_ERRORS as e:
            logger.warning("Database ping failed", error=_driver_message(e))
            return False

    async def inspect_columns(self) -> List[str]:
        """
        Read the table's actual column names and check the ones we need.

        Raises:
            PersistenceError: If the query fails or a required column is missing
        """
        engine = self._require_engine()
        stmt = select(literal_column("*")).select_from(self.table).limit(1)
        try:
            async with engine.connect() as conn:
                result = await conn.execute(stmt)
                columns = [str(key) for key in result.keys()]
        except DATABASE_ERRORS as e:
            logger.error("Failed to inspect table columns", error=_driver_message(e))
            raise PersistenceError(_driver_message(e)) from e

        logger.info("Table columns", table=self.table.fullname, columns=columns)

        lowered = {column.lower() for column in columns}
        missing = [column for column in REQUIRED_COLUMNS if column not in lowered]
        if missing:
            raise PersistenceError(
                f"Table {self.table.fullname} is missing columns: {', '.join(missing)}"
            )
        return columns

    async def insert(self, title: str, author: str, year: int) -> Optional[str]:
        """
        Insert a book; the database assigns id and regdate.

        Returns:
            The generated id, or None if the dialect cannot report it.
            Callers then have to fall back to query_latest().
        """
        engine = self._require_engine()
        stmt = insert(self.table).values(
            title=title, author=author, year=year, regdate=func.now()
        )
        use_returning = engine.dialect.insert_returning
        if use_returning:
            stmt = stmt.returning(self.table.c.id)

        try:
            async with engine.begin() as conn:
                result = await conn.execute(stmt)
                if use_returning:
                    new_id = result.scalar_one()
                else:
                    primary_key = result.inserted_primary_key
                    new_id = primary_key[0] if primary_key else None
        except DATABASE_ERRORS as e:
            logger.error("Failed to insert book", title=title, error=_driver_message(e))
            raise PersistenceError(f"Failed to add book: {_driver_message(e)}") from e

        if new_id is None:
            return None
        logger.debug("Book inserted", book_id=new_id)
        return str(new_id)

    async def update_by_id(self, book_id: str, title: str, author: str, year: int) -> int:
        """Update a book's mutable fields and return the number of rows affected."""
        key = _parse_id(book_id)
        if key is None:
            return 0

        engine = self._require_engine()
        stmt = (
            update(self.table)
            .where(self.table.c.id == key)
            .values(title=title, author=author, year=year)
        )
        try:
            async with engine.begin() as conn:
                result = await conn.execute(stmt)
                return result.rowcount
        except DATABASE_ERRORS as e:
            logger.error("Failed to update book", book_id=book_id, error=_driver_message(e))
            raise PersistenceError(f"Failed to update book: {_driver_message(e)}") from e

    async def delete_by_id(self, book_id: str) -> int:
        """Delete a book and return the number of rows affected."""
        key = _parse_id(book_id)
        if key is None:
            return 0

        engine = self._require_engine()
        stmt = delete(self.table).where(self.table.c.id == key)
        try:
            async with engine.begin() as conn:
                result = await conn.execute(stmt)
                return result.rowcount
        except DATABASE_ERRORS as e:
            logger.error("Failed to delete book", book_id=book_id, error=_driver_message(e))
            raise PersistenceError(f"Failed to delete book: {_driver_message(e)}") from e

    async def query_by_id(self, book_id: str) -> Optional[Book]:
        """Fetch one book by id, or None if no row matches."""
        key = _parse_id(book_id)
        if key is None:
            return None

        stmt = select(*self._columns).where(self.table.c.id == key)
        row = await self._fetch_one(stmt, "query_by_id")
        return row_to_book(row) if row is not None else None

    async def query_latest(self) -> Optional[Book]:
        """
        Fetch the most recently registered book.

        Not atomic with respect to insert(): a concurrent insert from another
        writer can make this return the wrong row.
        """
        stmt = (
            select(*self._columns)
            .order_by(self.table.c.regdate.desc(), self.table.c.id.desc())
            .limit(1)
        )
        row = await self._fetch_one(stmt, "query_latest")
        return row_to_book(row) if row is not None else None

    async def scan_all(self) -> List[Book]:
        """Read every book, ordered by id."""
        engine = self._require_engine()
        stmt = select(*self._columns).order_by(self.table.c.id)
        try:
            async with engine.connect() as conn:
                result = await conn.execute(stmt)
                rows = result.all()
        except DATABASE_ERRORS as e:
            logger.error("Failed to scan book table", error=_driver_message(e))
            raise PersistenceError(f"Failed to load books: {_driver_message(e)}") from e

        return [row_to_book(row) for row in rows]

    async def _fetch_one(self, stmt, operation: str):
        engine = self._require_engine()
        try:
            async with engine.connect() as conn:
                result = await conn.execute(stmt)
                return result.first()
        except DATABASE_ERRORS as e:
            logger.error("Database query failed", operation=operation, error=_driver_message(e))
            raise PersistenceError(f"Failed to read book: {_driver_message(e)}") from e
