import logging
from fastapi import APIRouter, Depends, HTTPException
from careops.models.conversation import MessageSender, MessageType
from careops.models.workspace import WorkspaceStatus
from careops.schemas.inbox import ContactSubmission, MessageCreate
from careops.routes.deps import get_gateway

logger = logging.getLogger(__name__)

router = APIRouter()

# ============== CONTACT FORM ROUTES ==============

@router.post("/contact/{workspace_slug}")
async def submit_contact_form(
    workspace_slug: str,
    data: ContactSubmission,
    gateway=Depends(get_gateway)
):
    """Submit contact form - Creates or reuses the contact and its open conversation"""
    workspace = await gateway.get_workspace_by_slug(workspace_slug)
    # Draft workspaces are not live yet
    if not workspace or workspace.status != WorkspaceStatus.ACTIVE:
        raise HTTPException(status_code=404, detail="Workspace not found")

    contact = await gateway.find_or_create_contact(workspace.id, data.name, data.email)
    conversation = await gateway.get_or_open_conversation(workspace.id, contact.id)
    message = await gateway.insert_message(MessageCreate(
        conversation_id=conversation.id,
        sender=MessageSender.CONTACT,
        content=data.message,
        message_type=MessageType.MANUAL
    ))
    logger.info("Inbound message %s in conversation %s", message.id, conversation.id)

    return {
        "success": True,
        "message": "Thank you! We'll be in touch soon.",
        "contact_id": contact.id,
        "conversation_id": conversation.id
    }
