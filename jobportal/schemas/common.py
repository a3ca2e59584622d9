"""Common Pydantic schemas."""
from typing import Any, Dict, Generic, List, Optional, TypeVar
from datetime import datetime

from pydantic import BaseModel, Field

T = TypeVar("T")


class BaseSchema(BaseModel):
    """Base schema with common configuration."""
    
    model_config = {
        "from_attributes": True,
        "validate_assignment": True,
        "arbitrary_types_allowed": True,
    }


class Envelope(BaseSchema):
    """Fields every response body carries."""

    success: bool = Field(True, description="Success status")
    message: Optional[str] = Field(None, description="Human readable outcome")


class PaginatedResponse(BaseSchema, Generic[T]):
    """Generic paginated response."""
    
    items: List[T] = Field(..., description="List of items")
    total: int = Field(..., description="Total number of items")
    page: int = Field(..., description="Current page number")
    size: int = Field(..., description="Page size")
    pages: int = Field(..., description="Total number of pages")
    
    @classmethod
    def create(
        cls,
        items: List[T],
        total: int,
        page: int,
        size: int,
    ) -> "PaginatedResponse[T]":
        """Create paginated response."""
        pages = (total + size - 1) // size if size > 0 else 0
        return cls(
            items=items,
            total=total,
            page=page,
            size=size,
            pages=pages,
        )


class FieldError(BaseSchema):
    """One field-level validation failure."""

    field: str = Field(..., description="Offending field")
    message: str = Field(..., description="What is wrong with it")


class ErrorResponse(BaseSchema):
    """Error response schema."""
    
    success: bool = Field(False, description="Always false")
    message: str = Field(..., description="Error message")
    error_code: Optional[str] = Field(None, description="Error code")
    errors: Optional[List[FieldError]] = Field(None, description="Field-level errors")
    details: Optional[Dict[str, Any]] = Field(None, description="Error details")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class SuccessResponse(Envelope):
    """Generic success response."""
    
    message: str = Field(..., description="Success message")


class HealthResponse(Envelope):
    """Health check response."""
    
    status: str = Field(..., description="Overall health status")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    version: str = Field(..., description="Application version")
    services: Dict[str, str] = Field(
        default_factory=dict,
        description="Service health statuses"
    )

