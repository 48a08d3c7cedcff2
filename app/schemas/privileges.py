"""
Pydantic schemas for privilege administration.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class PrivilegeValue(BaseModel):
    category: str
    key: str
    value: Any = Field(None, description="Effective value after override, plan and default")
    overridden: bool = Field(False, description="Whether an administrator override is stored")
    updated_at: Optional[datetime] = None
    updated_by: Optional[int] = None


class PrivilegeUpdate(BaseModel):
    value: Any = Field(..., description="New value; coerced to the key's type")


class PrivilegeBulkUpdate(BaseModel):
    values: Dict[str, Any] = Field(..., description="key -> new value, saved in one transaction")


class PrivilegesResponse(BaseModel):
    category: str
    privileges: Dict[str, Any]
    overrides: Dict[str, Any] = Field(default_factory=dict, description="Stored overrides only")
    schema_version: int


class CacheInvalidation(BaseModel):
    category: Optional[str] = None
    key: Optional[str] = None
