"""Health-related Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Dict

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"


class HealthResponse(BaseModel):
    """Health ping response, including whether each background worker is running."""

    status: HealthStatus = Field(..., description="Service status")
    service: str = Field(..., description="Service name")
    timestamp: datetime = Field(..., description="Current server time (ISO 8601)")
    version: str = Field(..., description="API version")
    workers: Dict[str, bool] = Field(default_factory=dict, description="Running state per background worker")
