"""
Table definition and row decoding for the book table.

The table is owned outside this service; the definition here only
describes the columns the gateway reads and writes.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Column, DateTime, Integer, MetaData, Table, Unicode, func

from books_api.models import Book

REQUIRED_COLUMNS = ("id", "title", "author", "year", "regdate")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def build_books_table(
    name: str = "tbl_book",
    schema: Optional[str] = None,
    metadata: Optional[MetaData] = None
) -> Table:
    """Describe the book table, optionally qualified by a schema."""
    return Table(
        name,
        metadata if metadata is not None else MetaData(),
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("title", Unicode(255)),
        Column("author", Unicode(255)),
        Column("year", Integer),
        Column("regdate", DateTime, nullable=False, server_default=func.now()),
        schema=schema,
    )


def format_timestamp(value: Any) -> str:
    """Render a regdate value the way clients see it."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    return str(value)


def row_to_book(row: Any) -> Book:
    """
    Decode a result row into a Book by column name.

    Column order does not matter; a missing column raises KeyError.
    """
    values = row._mapping
    return Book(
        id=str(values["id"]),
        title=values["title"] or "",
        author=values["author"] or "",
        year=values["year"] or 0,
        registration_timestamp=format_timestamp(values["regdate"]),
    )
