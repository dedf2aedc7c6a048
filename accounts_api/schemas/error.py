"""Error body returned for every domain exception."""

from pydantic import BaseModel, Field

from accounts_api.errors import (
    DUPLICATE_RESOURCE,
    FORBIDDEN,
    NOT_FOUND,
    PARTNER_PENDING_VALIDATION,
    UNAUTHORIZED,
    VALIDATION_ERROR,
)


class ErrorResponse(BaseModel):
    """Standard error body for domain exceptions (4xx)."""

    detail: str = Field(..., description="Human-readable error message")
    code: str = Field(
        ...,
        description="Machine-readable error code",
        examples=[
            UNAUTHORIZED,
            PARTNER_PENDING_VALIDATION,
            FORBIDDEN,
            NOT_FOUND,
            DUPLICATE_RESOURCE,
            VALIDATION_ERROR,
        ],
    )
