"""
Response envelope shared by all endpoints.
"""
from typing import Literal, Optional, List

from pydantic import BaseModel, ConfigDict


class ApiResponse(BaseModel):
    """Uniform ``{status, message}`` envelope; ``code`` is set on errors."""

    model_config = ConfigDict(populate_by_name=True)

    status: Literal["success", "error"]
    message: str
    code: Optional[str] = None


class FieldError(BaseModel):
    field: str
    message: str


class ValidationErrorResponse(ApiResponse):
    errors: List[FieldError] = []
