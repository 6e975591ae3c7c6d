"""
API models and schemas for the book records service.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# Range of the year column (32-bit INT)
YEAR_MIN = -2 ** 31
YEAR_MAX = 2 ** 31 - 1


class Book(BaseModel):
    """A book record as stored in the table and mirrored in memory."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., description="Identifier assigned by the database")
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Book author")
    year: int = Field(..., description="Publication year")
    registration_timestamp: str = Field(
        ...,
        alias="regdate",
        description="Creation timestamp assigned by the database",
    )


class BookPayload(BaseModel):
    """
    Request body for create and update.

    Server-assigned fields (id, regdate) are ignored if a client sends them.
    """

    model_config = ConfigDict(extra="ignore")

    title: str = Field("", description="Book title")
    author: str = Field("", description="Book author")
    year: int = Field(0, ge=YEAR_MIN, le=YEAR_MAX, description="Publication year")


class MessageResponse(BaseModel):
    """Confirmation body for operations without a resource to return."""
    message: str = Field(..., description="Human-readable confirmation")


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    time: datetime = Field(..., description="Current server time (UTC)")
