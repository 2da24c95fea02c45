from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

class InventoryItemCreate(BaseModel):
    workspace_id: int
    name: str = Field(min_length=1)
    quantity: int = Field(ge=0)
    low_stock_threshold: int = Field(ge=0)
    unit: Optional[str] = None

class InventoryItemRecord(InventoryItemCreate):
    id: int
    created_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True


# Request bodies
class AddInventoryItem(BaseModel):
    name: str = Field(min_length=1)
    quantity: int = Field(default=10, ge=0)
    low_stock_threshold: int = Field(default=5, ge=0)
    unit: Optional[str] = None

class UpdateInventoryQuantity(BaseModel):
    quantity: int = Field(ge=0)
