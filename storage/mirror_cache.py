"""
In-memory mirror of the book table.

Reads are served from here without a database round trip. The mirror is
mutated only after the database has confirmed a write, and every
operation runs under a single asyncio lock.
"""

import asyncio
from typing import Iterable, List, Optional

import structlog

from books_api.models import Book

logger = structlog.get_logger(__name__)


class MirrorCache:
    """Insertion-ordered, lock-guarded collection of books."""

    def __init__(self) -> None:
        self._books: List[Book] = []
        self._lock = asyncio.Lock()

    async def load(self, books: Iterable[Book]) -> int:
        """Replace the whole contents, e.g. from a full table scan."""
        async with self._lock:
            self._books = list(books)
            return len(self._books)

    async def all(self) -> List[Book]:
        """Return a snapshot of every cached book, in order."""
        async with self._lock:
            return list(self._books)

    async def find_by_id(self, book_id: str) -> Optional[Book]:
        async with self._lock:
            for book in self._books:
                if book.id == book_id:
                    return book
            return None

    async def append(self, book: Book) -> None:
        async with self._lock:
            self._books.append(book)

    async def replace(self, book_id: str, book: Book) -> bool:
        """
        Swap the entry for book_id in place, keeping its position.

        Returns:
            False if book_id is not cached; the cache is left unchanged.
        """
        async with self._lock:
            for index, cached in enumerate(self._books):
                if cached.id == book_id:
                    self._books[index] = book
                    return True

        logger.warning("Replace skipped, book not in mirror cache", book_id=book_id)
        return False

    async def remove(self, book_id: str) -> bool:
        """
        Drop the entry for book_id.

        Returns:
            False if book_id is not cached; the cache is left unchanged.
        """
        async with self._lock:
            for index, cached in enumerate(self._books):
                if cached.id == book_id:
                    del self._books[index]
                    return True

        logger.warning("Remove skipped, book not in mirror cache", book_id=book_id)
        return False

    async def size(self) -> int:
        async with self._lock:
            return len(self._books)
