"""Custom exceptions and exception handlers."""

from collections.abc import Sequence
from dataclasses import asdict
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from rag_control.core.logging import get_logger
from rag_control.core.models import Violation

logger = get_logger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

    def extra(self) -> dict[str, Any]:
        """Additional fields rendered into the error response body."""
        return {}


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND)


class ConflictException(AppException):
    """Uniqueness or concurrent-job violation."""

    def __init__(self, message: str = "Conflict"):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT)


class ValidationException(AppException):
    """Validation error exception carrying every violation found."""

    def __init__(
        self,
        message: str = "Validation error",
        violations: Sequence[Violation] = (),
    ):
        self.violations = list(violations)
        super().__init__(message, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)

    def extra(self) -> dict[str, Any]:
        return {"violations": [asdict(v) for v in self.violations]}


class NotConfiguredException(AppException):
    """No credential of the requested kind exists at any checked scope."""

    def __init__(self, kind: str, checked_scopes: Sequence[str]):
        self.kind = kind
        self.checked_scopes = list(checked_scopes)
        super().__init__(
            f"No credential of kind {kind} configured "
            f"(checked scopes: {', '.join(self.checked_scopes)})",
            status_code=status.HTTP_424_FAILED_DEPENDENCY,
        )

    def extra(self) -> dict[str, Any]:
        return {"kind": self.kind, "checked_scopes": self.checked_scopes}


class TransientEmbeddingError(Exception):
    """Retryable infrastructure hiccup while embedding a single chunk."""


class FatalJobError(Exception):
    """Infrastructure-level failure that aborts a running re-embed job."""


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle custom application exceptions.

    Args:
        request: The incoming request.
        exc: The exception that was raised.

    Returns:
        JSONResponse: Error response.
    """
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(f"Application error: {exc.message}", exc_info=True)
    else:
        logger.info(f"{exc.__class__.__name__}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "type": exc.__class__.__name__, **exc.extra()},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions.

    Args:
        request: The incoming request.
        exc: The HTTP exception that was raised.

    Returns:
        JSONResponse: Error response.
    """
    logger.warning(f"HTTP error {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions.

    Args:
        request: The incoming request.
        exc: The unhandled exception.

    Returns:
        JSONResponse: Error response.
    """
    logger.error(f"Unhandled error: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )
