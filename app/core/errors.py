"""
HTTP translation of core errors and refusal outcomes.

Services raise CoreError subclasses for caller mistakes and deployment faults,
and return refusal values (ok=False) for expected business outcomes. Both end
up here as JSON responses.
"""
import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.core.exceptions import (
    ConfigurationMissing,
    CoreError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)

logger = logging.getLogger(__name__)

_ERROR_STATUS = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    ConfigurationMissing: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

_OUTCOME_STATUS = {
    "QUOTA_EXCEEDED": status.HTTP_429_TOO_MANY_REQUESTS,
    "INSUFFICIENT_CREDITS": status.HTTP_402_PAYMENT_REQUIRED,
    "STATE_CONFLICT": status.HTTP_409_CONFLICT,
}


def status_for_error(exc: CoreError) -> int:
    for error_type, status_code in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


class OutcomeRefused(Exception):
    """Carries a refusal outcome (QuotaExceeded, StateConflict, ...) out of a route."""

    def __init__(self, outcome: Any):
        super().__init__(outcome.reason)
        self.outcome = outcome


def raise_for_outcome(outcome: Any) -> Any:
    """Return a successful outcome; raise OutcomeRefused for a refusal."""
    if getattr(outcome, "ok", True):
        return outcome
    raise OutcomeRefused(outcome)


async def core_error_handler(request: Request, exc: CoreError) -> JSONResponse:
    status_code = status_for_error(exc)
    if isinstance(exc, ConfigurationMissing):
        logger.error(f"Configuration missing on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def outcome_refused_handler(request: Request, exc: OutcomeRefused) -> JSONResponse:
    outcome = exc.outcome
    status_code = _OUTCOME_STATUS.get(outcome.reason, status.HTTP_409_CONFLICT)
    return JSONResponse(status_code=status_code, content=outcome.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CoreError, core_error_handler)
    app.add_exception_handler(OutcomeRefused, outcome_refused_handler)
