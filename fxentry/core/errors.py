from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

logger = logging.getLogger("fxentry.errors")


# Domain exceptions ------------------------------------------------


class FxEntryError(Exception):
    """Base class for engine errors."""


class RateUnavailable(FxEntryError):
    """No live, cached or fallback rate exists for the pair."""

    def __init__(self, base: str, quote: str, reason: str | None = None):
        self.base = base
        self.quote = quote
        self.reason = reason
        msg = f"rate unavailable for {base}->{quote}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class InvalidAmountInput(FxEntryError):
    def __init__(self, raw: str):
        self.raw = raw
        super().__init__(f"invalid amount input {raw!r}")


class UnsupportedCurrency(FxEntryError):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"unsupported currency '{code}'")


class DuplicateConfirmation(FxEntryError):
    def __init__(self, token: str):
        self.token = token
        super().__init__(f"confirmation token {token} was already applied")


class ConfirmationNotAllowed(FxEntryError):
    def __init__(self, phase: str, reason: str | None = None):
        self.phase = phase
        self.reason = reason
        super().__init__(reason or f"cannot confirm while {phase}")


class InsufficientFunds(FxEntryError):
    def __init__(self, required, available):
        self.required = required
        self.available = available
        super().__init__(f"insufficient balance: need {required}, have {available}")


class SessionNotFound(FxEntryError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"no amount entry session '{session_id}'")


class AccountNotFound(FxEntryError):
    def __init__(self, account_id: int):
        self.account_id = account_id
        super().__init__(f"no linked account with id {account_id}")


# HTTP handlers ----------------------------------------------------


def _error(status_code: int, error: str, detail) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"error": error, "detail": detail}
    )


def http_error_handler(request: Request, exc: StarletteHTTPException):  # type: ignore
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        return _error(
            exc.status_code,
            "not_found",
            f"No route for {request.method} {request.url.path}",
        )
    return _error(exc.status_code, "http_error", exc.detail)


def validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore
    return _error(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "validation_error", exc.errors()
    )


def duplicate_confirmation_handler(request: Request, exc: DuplicateConfirmation):  # type: ignore
    return _error(status.HTTP_409_CONFLICT, "duplicate_confirmation", str(exc))


def confirmation_not_allowed_handler(request: Request, exc: ConfirmationNotAllowed):  # type: ignore
    return _error(status.HTTP_409_CONFLICT, "confirmation_not_allowed", str(exc))


def rate_unavailable_handler(request: Request, exc: RateUnavailable):  # type: ignore
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "rate_unavailable", str(exc))


def insufficient_funds_handler(request: Request, exc: InsufficientFunds):  # type: ignore
    return _error(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "insufficient_funds", str(exc)
    )


def unsupported_currency_handler(request: Request, exc: UnsupportedCurrency):  # type: ignore
    return _error(status.HTTP_400_BAD_REQUEST, "unsupported_currency", str(exc))


def lookup_error_handler(request: Request, exc: FxEntryError):  # type: ignore
    return _error(status.HTTP_404_NOT_FOUND, "not_found", str(exc))


def server_error_handler(request: Request, exc: Exception):  # type: ignore
    logger.exception("unhandled exception")
    return _error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "internal_error",
        "An unexpected error occurred.",
    )
