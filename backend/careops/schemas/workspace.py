from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime
from careops.models.workspace import WorkspaceStatus

class WorkspaceRecord(BaseModel):
    id: int
    name: str
    slug: Optional[str] = None
    address: Optional[str] = None
    timezone: Optional[str] = None
    contact_email: Optional[str] = None
    status: WorkspaceStatus = WorkspaceStatus.DRAFT
    onboarding_step: Optional[int] = None
    created_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True

class WorkspaceDetails(BaseModel):
    name: str = Field(min_length=1)
    address: Optional[str] = None
    timezone: str = "UTC"
    contact_email: Optional[EmailStr] = None
    slug: str

class WorkspaceSettingsUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    contact_email: Optional[EmailStr] = None
