"""Domain exceptions and the handlers that turn them into error responses.

Every error leaves the service as {"error": {"code", "message", "details"}}.
"""

import logging
from typing import Union

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ReferenceDataException(Exception):
    """Base exception for reference-data application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: Union[dict, list, None] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class ValidationMessageError(ReferenceDataException):
    """Malformed input: bad query combinations, empty roles, mismatched right types."""

    def __init__(
        self,
        message: str,
        error_code: str = "VALIDATION_ERROR",
        details: Union[dict, list, None] = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=error_code,
            details=details,
        )


class ResourceNotFoundError(ReferenceDataException):
    """Exception for resources not found."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class ReferentialIntegrityError(ReferenceDataException):
    """Deleting something that is still referenced."""

    def __init__(self, resource: str, identifier: str, referenced_by: str, count: int):
        super().__init__(
            message=(
                f"{resource} {identifier} is still referenced by "
                f"{count} {referenced_by}"
            ),
            status_code=status.HTTP_409_CONFLICT,
            error_code="REFERENTIAL_INTEGRITY",
            details={"referenced_by": referenced_by, "count": count},
        )


class HierarchyCycleError(ReferenceDataException):
    """The supervisory node parent chain loops back on itself."""

    def __init__(self, node_ids: list[str]):
        self.node_ids = node_ids
        super().__init__(
            message=f"Supervisory node hierarchy contains a cycle: {' -> '.join(node_ids)}",
            status_code=status.HTTP_409_CONFLICT,
            error_code="SUPERVISORY_NODE_CYCLE",
            details={"path": node_ids},
        )


class PermissionDeniedError(ReferenceDataException):
    """Exception for permission denied."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="PERMISSION_DENIED",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Create standardized error response.

    Format:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable error message",
            "details": {...}  // Optional additional details
        }
    }
    """
    content = {
        "error": {
            "code": error_code,
            "message": message,
        }
    }

    if details:
        content["error"]["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content,
    )


async def reference_data_exception_handler(
    request: Request,
    exc: ReferenceDataException,
) -> JSONResponse:
    """Handle domain exceptions raised by services and the resolver."""
    logger.warning(
        f"Reference data exception: {exc.error_code} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Render HTTPExceptions (401 from token checks, 404 routes) in the error shape."""
    response = create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
    )
    # WWW-Authenticate on 401s
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Malformed request parameters, e.g. a missing rightId."""
    errors = [
        {"field": ".".join(str(loc) for loc in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]
    logger.warning("Invalid request on %s: %s", request.url.path, errors)

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Invalid request parameters",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


async def integrity_exception_handler(
    request: Request,
    exc: IntegrityError,
) -> JSONResponse:
    """A unique or foreign key constraint lost a race with a concurrent write."""
    logger.error("Integrity error on %s: %s", request.url.path, exc.orig)

    return create_error_response(
        status_code=status.HTTP_409_CONFLICT,
        message="The change conflicts with existing data",
        error_code="CONFLICT",
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    logger.error(
        "Unhandled exception on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(ReferenceDataException, reference_data_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
