from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from careops.database import Base


class WorkspaceStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"


class Workspace(Base):
    __tablename__ = "workspaces"
    
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), index=True)
    address = Column(String(500))
    timezone = Column(String(64), default="UTC")
    contact_email = Column(String(255))
    status = Column(Enum(WorkspaceStatus), default=WorkspaceStatus.DRAFT, nullable=False)
    onboarding_step = Column(Integer, default=1)
    
    created_at = Column(DateTime, default=datetime.utcnow)
    
    # Relationships
    users = relationship("User", back_populates="workspace")
    contacts = relationship("Contact", back_populates="workspace", cascade="all, delete-orphan")
    services = relationship("Service", back_populates="workspace", cascade="all, delete-orphan")
    conversations = relationship("Conversation", back_populates="workspace", cascade="all, delete-orphan")
    inventory_items = relationship("InventoryItem", back_populates="workspace", cascade="all, delete-orphan")
