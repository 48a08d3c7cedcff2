"""
Pydantic schemas for applications and missions.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ApplicationCreate(BaseModel):
    mission_id: int


class ApplicationStatusUpdate(BaseModel):
    status: str = Field(..., description="ACCEPTED, REJECTED or WITHDRAWN")


class MissionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    is_urgent: bool = False


class MissionSummary(BaseModel):
    """One listed mission; title and owner are withheld when redacted."""
    id: int
    status: str
    is_urgent: bool
    created_at: Optional[datetime] = None
    title: Optional[str] = None
    establishment_id: Optional[int] = None
    redacted: bool = False
    redaction_reason: Optional[str] = Field(
        None, description="VISITOR, PENDING, URGENT_PREMIUM_ONLY or RECENT_MISSION_PREMIUM_ONLY"
    )


class MissionListResponse(BaseModel):
    access_level: str = Field(..., description="VISITOR, OTHER, PENDING, VALIDATED or PREMIUM")
    missions: List[MissionSummary]
