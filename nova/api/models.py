"""
Pydantic Models for Nova API Responses.

Request bodies reuse the domain models from ``nova.models``; this module
holds the envelopes that only exist at the HTTP boundary.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

PROBLEM_MEDIA_TYPE = "application/problem+json"


class ProblemDetails(BaseModel):
    """Error envelope returned as ``application/problem+json``."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "type": "Client Error",
                "title": "Not Found",
                "status": 404,
                "cause": "user 3c9f1a8e-6d1b-4b4e-9f0e-2a7b5c1d8e90 not found",
            }
        }
    )

    type: Literal["Client Error", "Server Error"]
    title: str
    status: int
    cause: str

    @classmethod
    def for_status(cls, status: int, cause: str) -> ProblemDetails:
        """Build the envelope for an HTTP status, titled with its reason phrase."""
        try:
            title = HTTPStatus(status).phrase
        except ValueError:
            title = "Error"
        return cls(
            type="Server Error" if status >= 500 else "Client Error",
            title=title,
            status=status,
            cause=cause,
        )


class ProblemError(Exception):
    """Raised by handlers to answer with a problem envelope."""

    def __init__(self, status: int, cause: str):
        self.status = status
        self.cause = cause
        super().__init__(cause)

    def to_problem(self) -> ProblemDetails:
        return ProblemDetails.for_status(self.status, self.cause)


class ComponentHealth(BaseModel):
    status: Literal["healthy", "unhealthy", "disabled"]
    details: dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Response of the health endpoint."""

    status: Literal["healthy", "degraded"]
    version: str
    database: ComponentHealth
    cache: ComponentHealth


PROBLEM_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ProblemDetails, "description": "Malformed request or identifier"},
    404: {"model": ProblemDetails, "description": "Entity not found"},
    409: {"model": ProblemDetails, "description": "Entity already exists"},
    500: {"model": ProblemDetails, "description": "Internal server error"},
}


__all__ = [
    "PROBLEM_MEDIA_TYPE",
    "PROBLEM_RESPONSES",
    "ProblemDetails",
    "ProblemError",
    "ComponentHealth",
    "HealthResponse",
]
