"""
Pydantic schemas for verification endpoints.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class VerificationRecordResponse(BaseModel):
    id: int
    entity_type: str
    entity_id: int
    status: str
    version: int
    reviewer_id: Optional[int] = None
    notes: Optional[str] = None
    reject_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TransitionRequest(BaseModel):
    action: str = Field(..., description="TAKE_CHARGE, VALIDATE or REJECT")
    expected_version: int = Field(..., ge=1, description="Version the reviewer last read")
    notes: Optional[str] = None
    reject_reason: Optional[str] = Field(None, description="Required for REJECT")
    with_diploma: bool = Field(True, description="VALIDATE on a worker without diploma evidence when false")
