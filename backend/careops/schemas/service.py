from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal
from datetime import datetime

class ServiceCreate(BaseModel):
    workspace_id: int
    name: str = Field(min_length=1)
    duration: int = Field(gt=0)
    price: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    location: Optional[str] = None
    slug: str

class ServiceRecord(ServiceCreate):
    id: int
    created_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True
