from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime
from careops.models.conversation import ConversationStatus, MessageSender, MessageType


class ContactRecord(BaseModel):
    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    
    class Config:
        from_attributes = True


class ConversationRecord(BaseModel):
    id: int
    workspace_id: int
    contact_id: int
    status: ConversationStatus = ConversationStatus.OPEN
    automation_paused: bool = False
    last_message_at: Optional[datetime] = None
    contact: Optional[ContactRecord] = None
    
    class Config:
        from_attributes = True


class MessageCreate(BaseModel):
    conversation_id: int
    sender: MessageSender
    content: str = Field(min_length=1)
    message_type: MessageType = MessageType.MANUAL


class MessageRecord(MessageCreate):
    id: int
    created_at: datetime
    
    class Config:
        from_attributes = True


# Request bodies
class SendMessage(BaseModel):
    content: str


class ContactSubmission(BaseModel):
    name: str = Field(min_length=1)
    email: Optional[EmailStr] = None
    message: str = Field(min_length=1)
