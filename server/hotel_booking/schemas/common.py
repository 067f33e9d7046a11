"""Common Pydantic schemas."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class Problem(BaseModel):
    """RFC 9457 Problem Details response."""

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = Field(None, description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference for this occurrence")
    code: Optional[str] = Field(None, description="Application-specific error code")
    retryable: Optional[bool] = Field(None, description="Whether the operation can be retried")


def problem_responses(*status_codes: int) -> Dict[int, Dict[str, Any]]:
    """OpenAPI `responses` entries documenting Problem Details bodies."""
    return {status_code: {"model": Problem} for status_code in status_codes}
