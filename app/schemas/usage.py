"""
Pydantic schemas for quota usage endpoints.
"""
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field


class QuotaUsageDetail(BaseModel):
    """Usage of one resource kind."""
    resource_kind: str = Field(..., description="APPLICATION or MISSION")
    limit: Optional[int] = Field(None, description="Cap on live resources (None for unlimited)")
    current: int = Field(..., description="Live resources counted against the cap")
    remaining: Optional[int] = Field(None, description="Remaining quota (None for unlimited)")
    unlimited: bool = Field(..., description="Whether this resource kind is uncapped")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "resource_kind": "APPLICATION",
            "limit": 3,
            "current": 1,
            "remaining": 2,
            "unlimited": False
        }
    })


class QuotaUsageResponse(BaseModel):
    """Response schema for GET /me/quota."""
    plan: str = Field(..., description="Plan code governing the actor (BASIC, PREMIUM, ...)")
    monetization_mode: str = Field(..., description="SUBSCRIPTION, CREDITS or COMMISSION")
    credits: int = Field(0, description="Credit balance (CREDITS mode)")
    quotas: List[QuotaUsageDetail] = Field(..., description="Per-resource usage details")


class QuotaExceededResponse(BaseModel):
    """Error body returned with 429 when a reservation is refused."""
    ok: bool = Field(False)
    reason: str = Field("QUOTA_EXCEEDED", description="Refusal reason")
    resource_kind: str = Field(..., description="Resource kind that hit its cap")
    limit: int = Field(..., description="Resolved cap")
    current: int = Field(..., description="Live resources at the time of the refusal")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "ok": False,
            "reason": "QUOTA_EXCEEDED",
            "resource_kind": "APPLICATION",
            "limit": 3,
            "current": 3
        }
    })
