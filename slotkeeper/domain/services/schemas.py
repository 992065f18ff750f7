"""Service domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ServiceCreate(BaseModel):
    """Schema for creating a new service"""

    name: str
    duration_minutes: int
    description: Optional[str] = None


class ServiceUpdate(BaseModel):
    """Schema for updating an existing service"""

    name: Optional[str] = None
    duration_minutes: Optional[int] = None
    description: Optional[str] = None


class ServiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    duration_minutes: int
    description: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None


class PublicServiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    duration_minutes: int
    description: Optional[str] = None
