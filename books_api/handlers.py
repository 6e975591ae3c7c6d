"""
Request handlers for the book endpoints.

Each write runs the same pipeline: database write, re-read of the
canonical row, mirror cache update. Failures raise a BookServiceError
before the cache is touched.
"""

import asyncio
from typing import List

import structlog
from pydantic import ValidationError as PydanticValidationError

from books_api.errors import NotFoundError, PersistenceError, ValidationError
from books_api.models import Book, BookPayload, MessageResponse
from storage import BookGateway, MirrorCache

logger = structlog.get_logger(__name__)


def parse_payload(body: bytes) -> BookPayload:
    """
    Decode a create/update request body.

    Raises:
        ValidationError: If the body is not a JSON object with well-typed fields
    """
    try:
        return BookPayload.model_validate_json(body)
    except PydanticValidationError as e:
        errors = e.errors()
        detail = errors[0]["msg"] if errors else "invalid value"
        raise ValidationError(f"Invalid request body: {detail}") from e


class BookHandler:
    """
    Orchestrates the gateway and the mirror cache for each operation.

    Write pipelines are serialized by one lock, so a slow re-read can never
    put an older row into the cache after a newer one.
    """

    def __init__(self, gateway: BookGateway, cache: MirrorCache) -> None:
        self._gateway = gateway
        self._cache = cache
        self._write_lock = asyncio.Lock()

    async def list_books(self) -> List[Book]:
        """Every cached book, in table order."""
        return await self._cache.all()

    async def get_book(self, book_id: str) -> Book:
        """
        Look up a single book in the mirror cache.

        Raises:
            NotFoundError: If no cached book has this id
        """
        book = await self._cache.find_by_id(book_id)
        if book is None:
            raise NotFoundError(f"Book with ID '{book_id}' not found")
        return book

    async def create_book(self, payload: BookPayload) -> Book:
        """
        Insert a book, read it back and append it to the cache.

        Raises:
            PersistenceError: If the insert or the read-back fails
        """
        async with self._write_lock:
            new_id = await self._gateway.insert(payload.title, payload.author, payload.year)

            if new_id is not None:
                book = await self._gateway.query_by_id(new_id)
            else:
                logger.warning("Insert returned no id, reading most recent book instead")
                book = await self._gateway.query_latest()

            if book is None:
                logger.error("Created book could not be read back", book_id=new_id)
                raise PersistenceError("Failed to read back the created book")

            await self._cache.append(book)

        logger.info("Book created", book_id=book.id, title=book.title)
        return book

    async def update_book(self, book_id: str, payload: BookPayload) -> Book:
        """
        Update a book's title, author and year.

        Raises:
            NotFoundError: If no row has this id
            PersistenceError: If the update or the read-back fails
        """
        async with self._write_lock:
            affected = await self._gateway.update_by_id(
                book_id, payload.title, payload.author, payload.year
            )
            if affected == 0:
                raise NotFoundError(f"Book with ID '{book_id}' not found")

            book = await self._gateway.query_by_id(book_id)
            if book is None:
                logger.error("Updated book could not be read back", book_id=book_id)
                raise PersistenceError("Failed to read back the updated book")

            await self._cache.replace(book.id, book)

        logger.info("Book updated", book_id=book.id)
        return book

    async def delete_book(self, book_id: str) -> MessageResponse:
        """
        Delete a book from the table and the cache.

        Raises:
            NotFoundError: If no row has this id
            PersistenceError: If the delete fails
        """
        async with self._write_lock:
            affected = await self._gateway.delete_by_id(book_id)
            if affected == 0:
                raise NotFoundError(f"Book with ID '{book_id}' not found")

            await self._cache.remove(book_id)

        logger.info("Book deleted", book_id=book_id)
        return MessageResponse(message=f"Book '{book_id}' deleted successfully")
