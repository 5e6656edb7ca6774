"""Error taxonomy for the showcase API."""

from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

from logging_config import get_logger

logger = get_logger(__name__)


class ShowcaseError(Exception):
    """Base exception for showcase errors."""

    def __init__(self, message: str, error_type: str = "internal"):
        self.message = message
        self.error_type = error_type
        super().__init__(message)


class ValidationFailedError(ShowcaseError):
    """Raised when input is malformed or out of range."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, "validation")
        self.field = field


class NotFoundError(ShowcaseError):
    """Raised when a project, request or user does not exist."""

    def __init__(self, message: str):
        super().__init__(message, "not_found")


class ForbiddenError(ShowcaseError):
    """Raised when the caller lacks the required relationship to a resource."""

    def __init__(self, message: str):
        super().__init__(message, "forbidden")


class ConflictError(ShowcaseError):
    """Raised on duplicate pending requests, already-reviewed requests and lost races."""

    def __init__(self, message: str):
        super().__init__(message, "conflict")


class UnauthorizedError(ShowcaseError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, "unauthorized")


class StoreError(ShowcaseError):
    """Raised when the document store fails or is unavailable."""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, "internal")


# Conflicts surface as 400 to match the documented request/review/cancel responses.
STATUS_MAP = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "conflict": status.HTTP_400_BAD_REQUEST,
    "unauthorized": status.HTTP_401_UNAUTHORIZED,
    "internal": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(error: ShowcaseError) -> int:
    return STATUS_MAP.get(error.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR)


async def showcase_error_handler(request: Request, exc: ShowcaseError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message)
    return JSONResponse(
        status_code=code,
        content={"error": exc.message, "type": exc.error_type},
    )
