import asyncio
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from careops.core.conversation_view import ConversationViewController
from careops.schemas.auth import SessionContext
from careops.schemas.inbox import ConversationRecord, MessageRecord, SendMessage
from careops.routes.deps import get_gateway, get_workspace_session

logger = logging.getLogger(__name__)

router = APIRouter()


def _conversation_dict(conversation: ConversationRecord) -> dict:
    return {
        "id": conversation.id,
        "status": conversation.status.value,
        "automation_paused": conversation.automation_paused,
        "last_message_at": conversation.last_message_at.isoformat() if conversation.last_message_at else None,
        "contact": {
            "id": conversation.contact.id,
            "name": conversation.contact.name,
            "email": conversation.contact.email
        } if conversation.contact else None
    }


def _message_dict(message: MessageRecord) -> dict:
    return message.model_dump(mode="json")


async def _owned_conversation(gateway, session: SessionContext, conversation_id: int) -> ConversationRecord:
    conversation = await gateway.get_conversation(conversation_id)
    if not conversation or conversation.workspace_id != session.workspace_id:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


@router.get("/conversations")
async def get_conversations(
    search: str = "",
    session: SessionContext = Depends(get_workspace_session),
    gateway=Depends(get_gateway)
):
    """Get conversations for the workspace, most recent first, filtered by contact name"""
    controller = ConversationViewController(session, gateway)
    await controller.load_conversations()
    return {
        "conversations": [_conversation_dict(c) for c in controller.filtered_conversations(search)],
        "notifications": [n.model_dump(mode="json") for n in controller.notifier.drain()]
    }


@router.get("/conversations/{conversation_id}/messages")
async def get_conversation_messages(
    conversation_id: int,
    session: SessionContext = Depends(get_workspace_session),
    gateway=Depends(get_gateway)
):
    """Get all messages in a conversation, oldest first"""
    conversation = await _owned_conversation(gateway, session, conversation_id)

    controller = ConversationViewController(session, gateway)
    try:
        loaded = await controller.select(conversation_id)
        messages = list(controller.messages)
    finally:
        await controller.close()

    return {
        "success": loaded,
        "conversation": _conversation_dict(conversation),
        "messages": [_message_dict(m) for m in messages],
        "notifications": [n.model_dump(mode="json") for n in controller.notifier.drain()]
    }


@router.post("/conversations/{conversation_id}/messages")
async def send_message(
    conversation_id: int,
    body: SendMessage,
    session: SessionContext = Depends(get_workspace_session),
    gateway=Depends(get_gateway)
):
    """Send a staff reply; this pauses automated replies on the conversation"""
    if not body.content.strip():
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    await _owned_conversation(gateway, session, conversation_id)

    controller = ConversationViewController(session, gateway)
    try:
        await controller.select(conversation_id)
        controller.draft = body.content
        record = await controller.send()
    finally:
        await controller.close()

    return {
        "success": record is not None,
        "message": _message_dict(record) if record else None,
        "notifications": [n.model_dump(mode="json") for n in controller.notifier.drain()]
    }


# ============== LIVE INBOX ==============

async def _write_frames(websocket: WebSocket, outbox: asyncio.Queue):
    """Single writer for the socket; drops message frames the client already has"""
    delivered = set()
    while True:
        kind, payload = await outbox.get()
        if kind == "snapshot":
            delivered = {m.id for m in payload["messages"]}
            payload = {**payload, "messages": [_message_dict(m) for m in payload["messages"]]}
        elif kind == "message":
            if payload.id in delivered:
                continue
            delivered.add(payload.id)
            payload = {"message": _message_dict(payload)}
        await websocket.send_json({"type": kind, **payload})


async def _handle_frame(controller: ConversationViewController, frame: dict, outbox: asyncio.Queue):
    action = frame.get("type")

    if action == "select":
        conversation_id = frame.get("conversation_id")
        if not isinstance(conversation_id, int):
            outbox.put_nowait(("error", {"detail": "conversation_id is required"}))
            return
        known = {c.id for c in controller.conversations}
        if conversation_id not in known:
            await controller.load_conversations()
            known = {c.id for c in controller.conversations}
        if conversation_id not in known:
            outbox.put_nowait(("error", {"detail": "Conversation not found"}))
            return
        if await controller.select(conversation_id):
            outbox.put_nowait(("snapshot", {
                "conversation_id": conversation_id,
                "messages": list(controller.messages)
            }))

    elif action == "send":
        controller.draft = frame.get("content") or ""
        record = await controller.send()
        outbox.put_nowait(("sent", {"success": record is not None, "message_id": record.id if record else None}))

    elif action == "conversations":
        await controller.load_conversations()
        outbox.put_nowait(("conversations", {
            "conversations": [_conversation_dict(c) for c in controller.filtered_conversations(frame.get("search") or "")]
        }))

    else:
        outbox.put_nowait(("error", {"detail": f"Unknown frame type: {action}"}))


@router.websocket("/ws")
async def inbox_socket(websocket: WebSocket, token: Optional[str] = Query(None)):
    """
    Live inbox.

    Client frames: select {conversation_id}, send {content}, conversations {search}.
    Server frames: conversations, snapshot, message, sent, notification, error.
    """
    session = websocket.app.state.identity.get_current_session(token)
    if session is None or not session.workspace_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()

    controller = ConversationViewController(session, websocket.app.state.gateway)
    outbox: asyncio.Queue = asyncio.Queue()
    controller.add_listener(lambda message: outbox.put_nowait(("message", message)))
    writer = asyncio.create_task(_write_frames(websocket, outbox))

    try:
        await controller.load_conversations()
        outbox.put_nowait(("conversations", {
            "conversations": [_conversation_dict(c) for c in controller.conversations]
        }))
        while True:
            try:
                frame = await websocket.receive_json()
            except ValueError:
                outbox.put_nowait(("error", {"detail": "Frames must be JSON objects"}))
                continue
            if not isinstance(frame, dict):
                outbox.put_nowait(("error", {"detail": "Frames must be JSON objects"}))
                continue
            await _handle_frame(controller, frame, outbox)
            for notification in controller.notifier.drain():
                outbox.put_nowait(("notification", notification.model_dump(mode="json")))
    except WebSocketDisconnect:
        logger.info("Inbox socket closed for user %s", session.user_id)
    finally:
        await controller.close()
        writer.cancel()
