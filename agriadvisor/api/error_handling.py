"""
Centralized API Error Handling
Provides consistent error responses and exception handling
"""

import functools
import logging
import uuid
from typing import Optional, List

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from agriadvisor.api.schemas import ErrorCode, APIErrorResponse, APIErrorDetail

logger = logging.getLogger(__name__)


class APIError(Exception):
    """API error with standardized error codes"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[List[APIErrorDetail]] = None,
        request_id: Optional[str] = None
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or []
        self.request_id = request_id or str(uuid.uuid4())
        super().__init__(message)


class ValidationAPIError(APIError):
    """Validation-specific API error"""

    def __init__(
        self,
        message: str,
        field_errors: Optional[List[APIErrorDetail]] = None,
        request_id: Optional[str] = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=field_errors,
            request_id=request_id
        )


class NotFoundAPIError(APIError):
    """Resource not found API error"""

    def __init__(self, resource: str, identifier: str, request_id: Optional[str] = None):
        super().__init__(
            message=f"{resource} with identifier '{identifier}' not found",
            error_code=ErrorCode.NOT_FOUND,
            status_code=status.HTTP_404_NOT_FOUND,
            request_id=request_id
        )


class UnauthorizedAPIError(APIError):
    """Authentication API error"""

    def __init__(
        self,
        message: str = "Authentication required",
        error_code: ErrorCode = ErrorCode.UNAUTHORIZED,
        request_id: Optional[str] = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_401_UNAUTHORIZED,
            request_id=request_id
        )


# HTTP status to envelope code for errors raised outside APIError
HTTP_ERROR_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.UNAUTHORIZED,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
}


def error_response(message: str, error_code: ErrorCode, status_code: int,
                   details: Optional[List[APIErrorDetail]] = None,
                   request_id: Optional[str] = None) -> JSONResponse:
    """The error envelope every handler answers with"""
    envelope = APIErrorResponse(
        error=message,
        error_code=error_code,
        details=details or None,
        request_id=request_id or str(uuid.uuid4())
    )
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=status_code, content=jsonable_encoder(envelope), headers=headers)


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"API Error: {exc.message} (code: {exc.error_code.value}, request_id: {exc.request_id})",
        extra={"request_id": exc.request_id, "error_code": exc.error_code.value}
    )
    return error_response(exc.message, exc.error_code, exc.status_code, exc.details, exc.request_id)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    request_id = str(uuid.uuid4())
    logger.warning(
        f"HTTP Exception: {exc.detail} (status: {exc.status_code}, request_id: {request_id})",
        extra={"request_id": request_id, "status_code": exc.status_code}
    )
    error_code = HTTP_ERROR_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    return error_response(str(exc.detail), error_code, exc.status_code, request_id=request_id)


def validation_details(errors) -> List[APIErrorDetail]:
    """One detail per violation, with a dotted field path"""
    field_errors = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        field_errors.append(
            APIErrorDetail(
                field=".".join(loc) or None,
                message=error["msg"],
                code=error["type"]
            )
        )
    return field_errors


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request validation failures are 400s, not FastAPI's default 422"""
    request_id = str(uuid.uuid4())
    field_errors = validation_details(exc.errors())
    logger.warning(
        f"Validation Error: {len(field_errors)} field errors (request_id: {request_id})",
        extra={"request_id": request_id}
    )
    return error_response("Validation failed", ErrorCode.VALIDATION_ERROR, status.HTTP_400_BAD_REQUEST,
                          field_errors, request_id)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = str(uuid.uuid4())
    logger.error(
        f"Unhandled exception: {exc} (request_id: {request_id})",
        exc_info=True,
        extra={"request_id": request_id, "exception_type": type(exc).__name__}
    )
    return error_response("Internal server error", ErrorCode.INTERNAL_ERROR,
                          status.HTTP_500_INTERNAL_SERVER_ERROR, request_id=request_id)


def handle_api_errors(func):
    """Re-raise API and HTTP errors, turn anything else into a 500 APIError"""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except HTTPException:
            raise
        except APIError:
            raise
        except Exception as e:
            logger.error(f"Unexpected error in {func.__name__}: {str(e)}", exc_info=True)
            raise APIError(
                message=f"Internal error: {str(e)}",
                error_code=ErrorCode.INTERNAL_ERROR
            )
    return wrapper
