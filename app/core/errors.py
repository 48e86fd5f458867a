"""
Custom exception hierarchy for DogLog.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

from app.schemas.common import FieldError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class DogLogException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class GoalNotFoundError(DogLogException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "GOAL_NOT_FOUND"

    def __init__(self, goal_id: int):
        super().__init__(
            message=f"Goal {goal_id} not found.",
            details={"goal_id": goal_id},
        )


class StepNotFoundError(DogLogException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "STEP_NOT_FOUND"

    def __init__(self, step_id: int):
        super().__init__(
            message=f"Goal step {step_id} not found.",
            details={"step_id": step_id},
        )


class NothingToUndoError(DogLogException):
    http_status = status.HTTP_409_CONFLICT
    code = "NOTHING_TO_UNDO"

    def __init__(self, step_id: int):
        super().__init__(
            message=f"Goal step {step_id} has no attempts to undo.",
            details={"step_id": step_id},
        )


class InvalidOutcomeError(DogLogException):
    http_status = status.HTTP_400_BAD_REQUEST
    code = "INVALID_OUTCOME"

    def __init__(self, outcome: object):
        super().__init__(
            message=f'Invalid outcome {outcome!r}; expected "pass" or "needs_work".',
            details={"outcome": str(outcome)},
        )


class InvalidEventBatchError(DogLogException):
    http_status = status.HTTP_400_BAD_REQUEST
    code = "INVALID_EVENT_BATCH"

    def __init__(self, message: str, index: int | None = None):
        super().__init__(
            message=message,
            details={"index": index} if index is not None else {},
        )


class InvalidFilterError(DogLogException):
    http_status = status.HTTP_400_BAD_REQUEST
    code = "INVALID_FILTER"

    def __init__(self, message: str, field: str):
        super().__init__(message=message, details={"field": field})


class PersistenceError(DogLogException):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "PERSISTENCE_ERROR"

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(
            message=message,
            details={"operation": operation} if operation else {},
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def doglog_exception_handler(request: Request, exc: DogLogException) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 400 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append(FieldError(
            field=".".join(str(loc) for loc in error["loc"] if loc != "body"),
            message=error["msg"],
            type=error["type"],
        ).model_dump())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
