"""Pydantic schemas for suggestions and the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Advisory severity, declared from most to least urgent."""

    critical = "critical"
    warning = "warning"
    info = "info"
    success = "success"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.critical: 0,
    Severity.warning: 1,
    Severity.info: 2,
    Severity.success: 3,
}


class Suggestion(BaseModel):
    """A single advisory card produced by one pipeline run."""

    model_config = ConfigDict(frozen=True)

    id: str
    severity: Severity
    title: str
    description: str
    farm_id: str
    farm_name: str
    sensor_id: Optional[str] = None
    sensor_type: str
    value: float
    unit: str
    observed_at: datetime
    recommended_action: Optional[str] = None
    is_contextual: bool = False


class SeverityCounts(BaseModel):
    """Summary counts displayed above the suggestion list."""

    critical: int = Field(0, ge=0)
    warning: int = Field(0, ge=0)
    info: int = Field(0, ge=0)
    success: int = Field(0, ge=0)


class AdvisoryResult(BaseModel):
    """Full output of one refresh for a user."""

    user_id: str
    generation: int = Field(..., ge=1)
    suggestions: List[Suggestion] = Field(default_factory=list)
    counts: SeverityCounts = Field(default_factory=SeverityCounts)
    notices: List[str] = Field(
        default_factory=list,
        description="Non-fatal problems the user should be told about.",
    )


class FarmCreate(BaseModel):
    farm_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    location: str = ""
    notes: Optional[str] = None


class MemberCreate(BaseModel):
    user_id: str = Field(..., min_length=1)


class SensorCreate(BaseModel):
    sensor_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1, description="Free-text sensor type, e.g. 'Soil pH'.")
    unit: str = ""


class ReadingCreate(BaseModel):
    value: float
    observed_at: Optional[datetime] = Field(
        default=None, description="Observation time; defaults to the time of receipt."
    )


class ReadingAccepted(BaseModel):
    sensor_id: str
    observed_at: datetime
