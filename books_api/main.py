"""
FastAPI application for the book records service.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from books_api.auth import build_verifier, verify_api_key
from books_api.config import ServiceConfig, get_config
from books_api.errors import BookServiceError
from books_api.handlers import BookHandler, parse_payload
from books_api.logger import setup_logging
from books_api.models import Book, BookPayload, ErrorResponse, HealthResponse, MessageResponse
from storage import BookGateway, MirrorCache

logger = structlog.get_logger(__name__)

API_VERSION = "1.0.0"

router = APIRouter()

# Bodies are parsed after authentication, so document them explicitly
PAYLOAD_BODY = {
    "requestBody": {
        "required": True,
        "content": {"application/json": {"schema": BookPayload.model_json_schema()}},
    }
}


def get_handler(request: Request) -> BookHandler:
    """
    Dependency returning the BookHandler stored on app.state.

    Raises:
        RuntimeError: If the application has not finished starting
    """
    handler = getattr(request.app.state, "handler", None)
    if handler is None:
        raise RuntimeError("BookHandler not initialized. Check lifespan setup.")
    return handler


def _error_response(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
        headers=headers,
    )


async def book_service_error_handler(request: Request, exc: BookServiceError):
    """Render domain errors with the status code they carry."""
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("Request failed", path=request.url.path, error=exc.message)
    return _error_response(exc.status_code, exc.message)


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Report invalid request parameters as 400, not 422."""
    errors = exc.errors()
    detail = errors[0].get("msg", "invalid value") if errors else "invalid value"
    logger.info("Rejected malformed request", path=request.url.path, detail=detail)
    return _error_response(status.HTTP_400_BAD_REQUEST, f"Invalid request: {detail}")


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return _error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# Health check endpoint (no authentication required)
@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Liveness probe; reports degraded when the database does not answer."""
    gateway: Optional[BookGateway] = getattr(request.app.state, "gateway", None)
    healthy = gateway is not None and await gateway.ping()
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        time=datetime.now(timezone.utc),
    )


@router.get("/books", response_model=List[Book], tags=["Books"])
async def list_books(
    handler: BookHandler = Depends(get_handler),
    api_key: str = Depends(verify_api_key)
):
    """Get every book, served from the mirror cache."""
    return await handler.list_books()


@router.get("/books/{book_id}", response_model=Book, tags=["Books"])
async def get_book(
    book_id: str,
    handler: BookHandler = Depends(get_handler),
    api_key: str = Depends(verify_api_key)
):
    """Get a single book by ID."""
    return await handler.get_book(book_id)


@router.post(
    "/books",
    response_model=Book,
    status_code=status.HTTP_201_CREATED,
    tags=["Books"],
    openapi_extra=PAYLOAD_BODY,
)
async def create_book(
    request: Request,
    handler: BookHandler = Depends(get_handler),
    api_key: str = Depends(verify_api_key)
):
    """Add a book. The database assigns id and regdate."""
    payload = parse_payload(await request.body())
    return await handler.create_book(payload)


@router.put("/books/{book_id}", response_model=Book, tags=["Books"], openapi_extra=PAYLOAD_BODY)
async def update_book(
    book_id: str,
    request: Request,
    handler: BookHandler = Depends(get_handler),
    api_key: str = Depends(verify_api_key)
):
    """Replace a book's title, author and year."""
    payload = parse_payload(await request.body())
    return await handler.update_book(book_id, payload)


@router.delete("/books/{book_id}", response_model=MessageResponse, tags=["Books"])
async def delete_book(
    book_id: str,
    handler: BookHandler = Depends(get_handler),
    api_key: str = Depends(verify_api_key)
):
    """Delete a book."""
    return await handler.delete_book(book_id)


def create_app(config: Optional[ServiceConfig] = None) -> FastAPI:
    """
    Build the application.

    Args:
        config: Settings to use; loaded from the environment at startup if omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Connect to the database and fill the mirror cache before serving."""
        service_config = config or get_config()
        setup_logging(
            log_level=service_config.log_level,
            log_format=service_config.log_format,
            log_file=service_config.get_log_file_path(),
            debug=service_config.debug,
        )
        logger.info("Starting book records API", version=API_VERSION)
        verifier = build_verifier(service_config)

        gateway = BookGateway(
            service_config.get_database_url(),
            table_name=service_config.db_table,
            schema=service_config.get_table_schema(),
            echo=service_config.debug,
        )
        await gateway.connect()

        try:
            if service_config.verify_schema:
                await gateway.inspect_columns()
            books = await gateway.scan_all()
        except Exception:
            await gateway.disconnect()
            raise

        cache = MirrorCache()
        loaded = await cache.load(books)
        logger.info("Mirror cache loaded", books=loaded)

        app.state.config = service_config
        app.state.gateway = gateway
        app.state.cache = cache
        app.state.handler = BookHandler(gateway, cache)
        app.state.verifier = verifier

        yield

        logger.info("Shutting down book records API")
        del app.state.handler
        del app.state.verifier
        await gateway.disconnect()

    app = FastAPI(
        title="Book Records API",
        description="CRUD over the book table, with reads served from an in-memory mirror.",
        version=API_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(BookServiceError, book_service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "books_api.main:app",
        host=get_config().host,
        port=get_config().port,
        log_level="info"
    )
