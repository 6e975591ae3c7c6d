"""
Unit tests for BookHandler with a mocked gateway.
"""

import asyncio

import pytest

from books_api.errors import NotFoundError, PersistenceError, ValidationError
from books_api.handlers import BookHandler, parse_payload
from books_api.models import Book, BookPayload
from storage import MirrorCache


@pytest.fixture
def cache():
    return MirrorCache()


@pytest.fixture
def handler(mock_gateway, cache):
    return BookHandler(mock_gateway, cache)


class TestParsePayload:
    """Test cases for request body decoding."""

    def test_full_body(self):
        payload = parse_payload(b'{"title": "Dune", "author": "Herbert", "year": 1965}')
        assert payload == BookPayload(title="Dune", author="Herbert", year=1965)

    def test_server_fields_ignored(self):
        payload = parse_payload(b'{"id": "7", "regdate": "2020-01-01", "title": "Dune"}')
        assert payload.title == "Dune"
        assert not hasattr(payload, "id")

    @pytest.mark.parametrize("body", [
        b"", b"null", b"{", b'"Dune"', b'{"year": "soon"}', b'{"title": 5}', b'{"year": 2147483648}',
    ])
    def test_malformed_body(self, body):
        with pytest.raises(ValidationError):
            parse_payload(body)


class TestBookHandler:
    """Test cases for the write pipelines."""

    @pytest.mark.asyncio
    async def test_create_reads_back_by_generated_id(self, handler, mock_gateway, cache, sample_book):
        book = await handler.create_book(BookPayload(title="Dune", author="Herbert", year=1965))

        assert book == sample_book
        mock_gateway.insert.assert_awaited_once_with("Dune", "Herbert", 1965)
        mock_gateway.query_by_id.assert_awaited_once_with(sample_book.id)
        mock_gateway.query_latest.assert_not_awaited()
        assert await cache.all() == [sample_book]

    @pytest.mark.asyncio
    async def test_create_falls_back_to_latest_row(self, handler, mock_gateway, cache, sample_book):
        mock_gateway.insert.return_value = None

        book = await handler.create_book(BookPayload(title="Dune"))

        assert book == sample_book
        mock_gateway.query_latest.assert_awaited_once()
        assert await cache.size() == 1

    @pytest.mark.asyncio
    async def test_create_insert_failure(self, handler, mock_gateway, cache):
        mock_gateway.insert.side_effect = PersistenceError("Failed to add book: timeout")

        with pytest.raises(PersistenceError):
            await handler.create_book(BookPayload(title="Dune"))

        mock_gateway.query_by_id.assert_not_awaited()
        assert await cache.size() == 0

    @pytest.mark.asyncio
    async def test_create_read_back_missing(self, handler, mock_gateway, cache):
        mock_gateway.query_by_id.return_value = None

        with pytest.raises(PersistenceError):
            await handler.create_book(BookPayload(title="Dune"))

        assert await cache.size() == 0

    @pytest.mark.asyncio
    async def test_update_replaces_cached_entry(self, handler, mock_gateway, cache, sample_book):
        await cache.load([sample_book])
        revised = sample_book.model_copy(update={"title": "Dune (rev)"})
        mock_gateway.query_by_id.return_value = revised

        book = await handler.update_book("1", BookPayload(title="Dune (rev)", author="Herbert", year=1965))

        assert book.title == "Dune (rev)"
        mock_gateway.update_by_id.assert_awaited_once_with("1", "Dune (rev)", "Herbert", 1965)
        assert await cache.find_by_id("1") == revised

    @pytest.mark.asyncio
    async def test_update_missing_row(self, handler, mock_gateway, cache, sample_book):
        await cache.load([sample_book])
        mock_gateway.update_by_id.return_value = 0

        with pytest.raises(NotFoundError):
            await handler.update_book("2", BookPayload(title="X"))

        mock_gateway.query_by_id.assert_not_awaited()
        assert await cache.all() == [sample_book]

    @pytest.mark.asyncio
    async def test_update_read_back_failure(self, handler, mock_gateway, cache, sample_book):
        await cache.load([sample_book])
        mock_gateway.query_by_id.side_effect = PersistenceError("Failed to read book: gone away")

        with pytest.raises(PersistenceError):
            await handler.update_book("1", BookPayload(title="X"))

        assert await cache.all() == [sample_book]

    @pytest.mark.asyncio
    async def test_update_of_uncached_row_is_not_fatal(self, handler, mock_gateway, cache, sample_book):
        """A row written by someone else is returned even if the mirror missed it."""
        book = await handler.update_book("1", BookPayload(title="Dune"))

        assert book == sample_book
        assert await cache.size() == 0

    @pytest.mark.asyncio
    async def test_delete_removes_cached_entry(self, handler, mock_gateway, cache, sample_book):
        await cache.load([sample_book])

        response = await handler.delete_book("1")

        assert response.message
        mock_gateway.delete_by_id.assert_awaited_once_with("1")
        assert await cache.size() == 0

    @pytest.mark.asyncio
    async def test_delete_missing_row(self, handler, mock_gateway, cache, sample_book):
        await cache.load([sample_book])
        mock_gateway.delete_by_id.return_value = 0

        with pytest.raises(NotFoundError):
            await handler.delete_book("9")

        assert await cache.all() == [sample_book]

    @pytest.mark.asyncio
    async def test_get_book(self, handler, cache, sample_book):
        await cache.load([sample_book])

        assert await handler.get_book("1") == sample_book
        with pytest.raises(NotFoundError):
            await handler.get_book("2")

    @pytest.mark.asyncio
    async def test_write_pipelines_do_not_interleave(self, mock_gateway, cache):
        """A second write waits until the first has updated the cache."""
        events = []
        release = asyncio.Event()

        async def slow_insert(title, author, year):
            events.append(f"insert {title}")
            if title == "first":
                await release.wait()
            return title

        async def read_back(book_id):
            events.append(f"read {book_id}")
            return Book(id=book_id, title=book_id, author="", year=0, registration_timestamp="")

        mock_gateway.insert.side_effect = slow_insert
        mock_gateway.query_by_id.side_effect = read_back
        handler = BookHandler(mock_gateway, cache)

        first = asyncio.create_task(handler.create_book(BookPayload(title="first")))
        second = asyncio.create_task(handler.create_book(BookPayload(title="second")))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        release.set()
        await asyncio.gather(first, second)

        assert events == ["insert first", "read first", "insert second", "read second"]
        assert [book.id for book in await cache.all()] == ["first", "second"]
