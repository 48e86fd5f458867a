"""
Error envelope shared by every router's `responses=` documentation.

    {"code": "STEP_NOT_FOUND", "message": "...", "details": {"step_id": 4}}

Validation failures use code VALIDATION_ERROR with
`details.errors = [FieldError, ...]`.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class FieldError(BaseModel):
    field: str = Field(description='Dotted path into the request, e.g. "events.0.valence".')
    message: str
    type: str


class ErrorResponse(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "NOTHING_TO_UNDO",
                "message": "Goal step 4 has no attempts to undo.",
                "details": {"step_id": 4},
            }
        }
    )

    code: str = Field(description="Machine-readable error code; branch on this, not the message.")
    message: str
    details: Optional[dict[str, Any]] = None
