"""
Protocol error rendering.

Maps domain exceptions to HTTP status codes and ``{"errcode", "error"}``
bodies, and renders request validation failures in the same shape.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from homeserver.domain.exceptions import (
    GuestAccessForbidden,
    InvalidParam,
    InvalidUsername,
    MissingParam,
    MissingToken,
    NotSupported,
    RegistrationDisabled,
    RegistrationError,
    StorageFailure,
    UnknownToken,
    UserInUse,
)

logger = logging.getLogger(__name__)

ERROR_CODES: dict[type[RegistrationError], tuple[int, str]] = {
    InvalidUsername: (status.HTTP_400_BAD_REQUEST, "M_INVALID_USERNAME"),
    UserInUse: (status.HTTP_400_BAD_REQUEST, "M_USER_IN_USE"),
    MissingParam: (status.HTTP_400_BAD_REQUEST, "M_MISSING_PARAM"),
    InvalidParam: (status.HTTP_400_BAD_REQUEST, "M_INVALID_PARAM"),
    RegistrationDisabled: (status.HTTP_403_FORBIDDEN, "M_FORBIDDEN"),
    GuestAccessForbidden: (status.HTTP_403_FORBIDDEN, "M_GUEST_ACCESS_FORBIDDEN"),
    MissingToken: (status.HTTP_401_UNAUTHORIZED, "M_MISSING_TOKEN"),
    UnknownToken: (status.HTTP_401_UNAUTHORIZED, "M_UNKNOWN_TOKEN"),
    NotSupported: (status.HTTP_404_NOT_FOUND, "M_UNRECOGNIZED"),
    StorageFailure: (status.HTTP_500_INTERNAL_SERVER_ERROR, "M_UNKNOWN"),
}


def error_body(errcode: str, error: str) -> dict[str, str]:
    return {"errcode": errcode, "error": error}


def error_response(exc: RegistrationError) -> JSONResponse:
    """
    Render a domain exception as a protocol error response.

    Storage failures are logged and returned with an opaque message.
    """
    for exc_type in type(exc).__mro__:
        if exc_type in ERROR_CODES:
            status_code, errcode = ERROR_CODES[exc_type]
            break
    else:
        status_code, errcode = status.HTTP_500_INTERNAL_SERVER_ERROR, "M_UNKNOWN"

    if status_code >= 500:
        logger.error("Request failed: %s", exc.__class__.__name__)
        message = "Internal server error"
    else:
        message = str(exc)

    return JSONResponse(status_code=status_code, content=error_body(errcode, message))


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render FastAPI validation errors as 400 protocol errors."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()))

    if first.get("type") == "missing":
        errcode = "M_MISSING_PARAM"
    elif first.get("loc", ("body",))[0] == "body":
        errcode = "M_BAD_JSON"
    else:
        errcode = "M_INVALID_PARAM"

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(errcode, f"{location}: {first.get('msg', 'Invalid request')}"),
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
