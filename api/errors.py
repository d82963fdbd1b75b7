"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from core.exceptions import (
    InsufficientBalance, LedgerError, NotificationError, RecipientUnreachable,
    TemplateInactive, TemplateNotFound, UnresolvedContext,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins
_NOTIFICATION_ERRORS = (
    (TemplateNotFound, 404, ErrorCodes.TEMPLATE_NOT_FOUND),
    (TemplateInactive, 409, ErrorCodes.TEMPLATE_INACTIVE),
    (UnresolvedContext, 404, ErrorCodes.UNRESOLVED_CONTEXT),
    (RecipientUnreachable, 422, ErrorCodes.RECIPIENT_UNREACHABLE),
    (InsufficientBalance, 402, ErrorCodes.INSUFFICIENT_BALANCE),
    (LedgerError, 409, ErrorCodes.LEDGER_ERROR),
)


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(NotificationError)
    async def notification_error_handler(request: Request, exc: NotificationError):
        for error_type, status_code, code in _NOTIFICATION_ERRORS:
            if isinstance(exc, error_type):
                break
        else:
            status_code, code = 500, ErrorCodes.INTERNAL_ERROR

        return JSONResponse(
            status_code=status_code,
            content=error_response(code, str(exc)).model_dump(mode="json"),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        message = str(exc)
        if "not found" in message.lower():
            return JSONResponse(
                status_code=404,
                content=error_response(ErrorCodes.NOT_FOUND, message).model_dump(mode="json"),
            )
        if "already has" in message.lower():
            return JSONResponse(
                status_code=409,
                content=error_response(ErrorCodes.ALREADY_EXISTS, message).model_dump(mode="json"),
            )
        return JSONResponse(
            status_code=400,
            content=error_response(ErrorCodes.INVALID_REQUEST, message).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                str(exc.errors()),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                ErrorCodes.INTERNAL_ERROR,
                "An internal error occurred",
            ).model_dump(mode="json"),
        )
