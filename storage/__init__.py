"""
Relational storage for book records.

- gateway: the only component that talks SQL
- schema: table definition and row decoding
- mirror_cache: in-memory, lock-guarded copy of the table
"""

from .gateway import BookGateway
from .mirror_cache import MirrorCache
from .schema import REQUIRED_COLUMNS, build_books_table, row_to_book

__all__ = [
    "BookGateway",
    "MirrorCache",
    "REQUIRED_COLUMNS",
    "build_books_table",
    "row_to_book",
]
