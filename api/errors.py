"""
api/errors.py -- Map domain Failures to HTTP responses.

ERROR_STATUS is the single table from ErrorKind to status code. A test
asserts it covers every ErrorKind, so adding a kind without deciding its
status fails CI rather than falling through to a 500.

Messages come from the Failure itself, which only ever carries the safe
defaults in auth/errors.py or a field-validation message.
"""

from __future__ import annotations

from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse
from auth.errors import ErrorKind, Failure

ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.EMAIL_ALREADY_EXISTS: 409,
    ErrorKind.USERNAME_TAKEN: 409,
    ErrorKind.INVALID_CREDENTIALS: 401,
    ErrorKind.ACCOUNT_DEACTIVATED: 403,
    ErrorKind.INVALID_REFRESH_TOKEN: 401,
    ErrorKind.REFRESH_TOKEN_EXPIRED: 401,
    ErrorKind.USER_NOT_FOUND: 404,
    ErrorKind.UNAUTHENTICATED: 401,
}


def failure_response(failure: Failure) -> JSONResponse:
    """Render a Failure in the standard error envelope.

    For INVALID_INPUT the field-specific code (e.g. WEAK_PASSWORD) is the
    top-level code and the generic kind goes into detail.
    """
    if failure.kind is ErrorKind.INVALID_INPUT:
        error = ErrorDetail(
            code=failure.code or failure.kind.value,
            message=failure.message,
            detail=failure.kind.value,
            field=failure.field,
        )
    else:
        error = ErrorDetail(code=failure.kind.value, message=failure.message)
    resp = JSONResponse(
        status_code=ERROR_STATUS[failure.kind],
        content=ErrorResponse(error=error).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp
