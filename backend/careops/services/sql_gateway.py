"""SQLAlchemy implementation of the data access gateway."""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload
from starlette.concurrency import run_in_threadpool

from careops.config import settings
from careops.database import SessionLocal
from careops.models.contact import Contact
from careops.models.conversation import Conversation, ConversationStatus, Message
from careops.models.inventory import InventoryItem
from careops.models.service import Service
from careops.models.workspace import Workspace
from careops.schemas.inbox import ContactRecord, ConversationRecord, MessageCreate, MessageRecord
from careops.schemas.inventory import InventoryItemCreate, InventoryItemRecord
from careops.schemas.service import ServiceCreate, ServiceRecord
from careops.schemas.workspace import WorkspaceRecord
from careops.services.gateway import GatewayError, MessageCallback
from careops.services.realtime import MessageBroker, Subscription

logger = logging.getLogger(__name__)


def _apply(row, fields: Dict[str, Any], operation: str):
    for key, value in fields.items():
        if key == "id" or not hasattr(type(row), key):
            raise GatewayError(operation, f"unknown column '{key}'")
        setattr(row, key, value)


def _commit(db, deadline: float, operation: str):
    """Flush, then commit only if the call is still inside its deadline.

    A commit that has already started is never abandoned, so a write either
    lands and is reported, or is rolled back and reported as timed out.
    """
    db.flush()
    if time.monotonic() > deadline:
        db.rollback()
        logger.error("Gateway call %s rolled back, past its deadline", operation)
        raise GatewayError(operation, "request timed out")
    db.commit()


class SqlAlchemyGateway:
    def __init__(self, session_factory=SessionLocal, broker: Optional[MessageBroker] = None, timeout: Optional[float] = None):
        self._session_factory = session_factory
        self.broker = broker or MessageBroker()
        self._timeout = timeout if timeout is not None else settings.GATEWAY_TIMEOUT_SECONDS

    async def _run(self, operation: str, fn, *args):
        try:
            return await asyncio.wait_for(run_in_threadpool(fn, *args), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.error("Gateway call %s timed out after %ss", operation, self._timeout)
            raise GatewayError(operation, "request timed out")
        except SQLAlchemyError as e:
            logger.error("Gateway call %s failed: %s", operation, e)
            raise GatewayError(operation, str(e)) from e

    async def _write(self, operation: str, fn, *args):
        """Run a write helper; ``fn`` receives the deadline as its first argument.

        Unlike reads, a write is never abandoned while its thread may still
        commit. Past the timeout we wait for the thread to settle: either it
        was rolled back at the commit check, or its commit was already under
        way and the stored row is returned.
        """
        deadline = time.monotonic() + self._timeout
        task = asyncio.ensure_future(run_in_threadpool(fn, deadline, *args))
        try:
            try:
                return await asyncio.wait_for(asyncio.shield(task), timeout=self._timeout)
            except asyncio.TimeoutError:
                logger.warning("Gateway call %s passed %ss, waiting for its outcome", operation, self._timeout)
                return await task
        except SQLAlchemyError as e:
            logger.error("Gateway call %s failed: %s", operation, e)
            raise GatewayError(operation, str(e)) from e

    # ───────────── Workspaces ─────────────

    def _get_workspace(self, workspace_id: int):
        with self._session_factory() as db:
            workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
            return WorkspaceRecord.model_validate(workspace) if workspace else None

    async def get_workspace(self, workspace_id: int) -> Optional[WorkspaceRecord]:
        return await self._run("get_workspace", self._get_workspace, workspace_id)

    def _get_workspace_by_slug(self, slug: str):
        with self._session_factory() as db:
            workspace = db.query(Workspace).filter(Workspace.slug == slug).order_by(Workspace.id).first()
            return WorkspaceRecord.model_validate(workspace) if workspace else None

    async def get_workspace_by_slug(self, slug: str) -> Optional[WorkspaceRecord]:
        return await self._run("get_workspace_by_slug", self._get_workspace_by_slug, slug)

    def _update_workspace(self, deadline: float, workspace_id: int, fields: Dict[str, Any]):
        with self._session_factory() as db:
            workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
            if not workspace:
                raise GatewayError("update_workspace", "workspace not found")
            _apply(workspace, fields, "update_workspace")
            _commit(db, deadline, "update_workspace")
            return WorkspaceRecord.model_validate(workspace)

    async def update_workspace(self, workspace_id: int, fields: Dict[str, Any]) -> WorkspaceRecord:
        return await self._write("update_workspace", self._update_workspace, workspace_id, fields)

    # ───────────── Services ─────────────

    def _insert_service(self, deadline: float, data: ServiceCreate):
        with self._session_factory() as db:
            service = Service(**data.model_dump())
            db.add(service)
            _commit(db, deadline, "insert_service")
            db.refresh(service)
            return ServiceRecord.model_validate(service)

    async def insert_service(self, service: ServiceCreate) -> ServiceRecord:
        return await self._write("insert_service", self._insert_service, service)

    # ───────────── Inventory ─────────────

    def _insert_inventory_item(self, deadline: float, data: InventoryItemCreate):
        with self._session_factory() as db:
            item = InventoryItem(**data.model_dump())
            db.add(item)
            _commit(db, deadline, "insert_inventory_item")
            db.refresh(item)
            return InventoryItemRecord.model_validate(item)

    async def insert_inventory_item(self, item: InventoryItemCreate) -> InventoryItemRecord:
        return await self._write("insert_inventory_item", self._insert_inventory_item, item)

    def _list_inventory(self, workspace_id: int):
        with self._session_factory() as db:
            items = db.query(InventoryItem).filter(
                InventoryItem.workspace_id == workspace_id
            ).order_by(InventoryItem.name).all()
            return [InventoryItemRecord.model_validate(item) for item in items]

    async def list_inventory(self, workspace_id: int) -> List[InventoryItemRecord]:
        return await self._run("list_inventory", self._list_inventory, workspace_id)

    def _update_inventory_item(self, deadline: float, item_id: int, workspace_id: int, fields: Dict[str, Any]):
        with self._session_factory() as db:
            item = db.query(InventoryItem).filter(
                InventoryItem.id == item_id,
                InventoryItem.workspace_id == workspace_id
            ).first()
            if not item:
                return None
            _apply(item, fields, "update_inventory_item")
            _commit(db, deadline, "update_inventory_item")
            return InventoryItemRecord.model_validate(item)

    async def update_inventory_item(self, item_id: int, workspace_id: int, fields: Dict[str, Any]) -> Optional[InventoryItemRecord]:
        return await self._write("update_inventory_item", self._update_inventory_item, item_id, workspace_id, fields)

    def _delete_inventory_item(self, deadline: float, item_id: int, workspace_id: int):
        with self._session_factory() as db:
            item = db.query(InventoryItem).filter(
                InventoryItem.id == item_id,
                InventoryItem.workspace_id == workspace_id
            ).first()
            if not item:
                return False
            db.delete(item)
            _commit(db, deadline, "delete_inventory_item")
            return True

    async def delete_inventory_item(self, item_id: int, workspace_id: int) -> bool:
        return await self._write("delete_inventory_item", self._delete_inventory_item, item_id, workspace_id)

    # ───────────── Inbox ─────────────

    def _list_conversations(self, workspace_id: int):
        with self._session_factory() as db:
            conversations = db.query(Conversation).options(
                joinedload(Conversation.contact)
            ).filter(
                Conversation.workspace_id == workspace_id
            ).order_by(
                Conversation.last_message_at.desc().nulls_last(),
                Conversation.id.desc()
            ).all()
            return [ConversationRecord.model_validate(c) for c in conversations]

    async def list_conversations(self, workspace_id: int) -> List[ConversationRecord]:
        return await self._run("list_conversations", self._list_conversations, workspace_id)

    def _get_conversation(self, conversation_id: int):
        with self._session_factory() as db:
            conversation = db.query(Conversation).options(
                joinedload(Conversation.contact)
            ).filter(Conversation.id == conversation_id).first()
            return ConversationRecord.model_validate(conversation) if conversation else None

    async def get_conversation(self, conversation_id: int) -> Optional[ConversationRecord]:
        return await self._run("get_conversation", self._get_conversation, conversation_id)

    def _update_conversation(self, deadline: float, conversation_id: int, fields: Dict[str, Any]):
        with self._session_factory() as db:
            conversation = db.query(Conversation).options(
                joinedload(Conversation.contact)
            ).filter(Conversation.id == conversation_id).first()
            if not conversation:
                raise GatewayError("update_conversation", "conversation not found")
            _apply(conversation, fields, "update_conversation")
            _commit(db, deadline, "update_conversation")
            return ConversationRecord.model_validate(conversation)

    async def update_conversation(self, conversation_id: int, fields: Dict[str, Any]) -> ConversationRecord:
        return await self._write("update_conversation", self._update_conversation, conversation_id, fields)

    def _list_messages(self, conversation_id: int):
        with self._session_factory() as db:
            messages = db.query(Message).filter(
                Message.conversation_id == conversation_id
            ).order_by(Message.created_at, Message.id).all()
            return [MessageRecord.model_validate(m) for m in messages]

    async def list_messages(self, conversation_id: int) -> List[MessageRecord]:
        return await self._run("list_messages", self._list_messages, conversation_id)

    def _insert_message(self, deadline: float, data: MessageCreate):
        with self._session_factory() as db:
            conversation = db.query(Conversation).filter(Conversation.id == data.conversation_id).first()
            if not conversation:
                raise GatewayError("insert_message", "conversation not found")
            message = Message(**data.model_dump(), created_at=datetime.utcnow())
            db.add(message)
            conversation.last_message_at = message.created_at
            _commit(db, deadline, "insert_message")
            db.refresh(message)
            return MessageRecord.model_validate(message)

    async def insert_message(self, message: MessageCreate) -> MessageRecord:
        record = await self._write("insert_message", self._insert_message, message)
        self.broker.publish(record)
        return record

    def _find_or_create_contact(self, deadline: float, workspace_id: int, name: str, email: Optional[str]):
        with self._session_factory() as db:
            contact = db.query(Contact).filter(
                Contact.workspace_id == workspace_id,
                Contact.email == email
            ).first() if email else None

            if not contact:
                contact = Contact(workspace_id=workspace_id, name=name, email=email)
                db.add(contact)
                _commit(db, deadline, "find_or_create_contact")
                db.refresh(contact)
            return ContactRecord.model_validate(contact)

    async def find_or_create_contact(self, workspace_id: int, name: str, email: Optional[str]) -> ContactRecord:
        return await self._write("find_or_create_contact", self._find_or_create_contact, workspace_id, name, email)

    def _get_or_open_conversation(self, deadline: float, workspace_id: int, contact_id: int):
        with self._session_factory() as db:
            conversation = db.query(Conversation).options(
                joinedload(Conversation.contact)
            ).filter(
                Conversation.workspace_id == workspace_id,
                Conversation.contact_id == contact_id,
                Conversation.status == ConversationStatus.OPEN
            ).first()

            if not conversation:
                conversation = Conversation(
                    workspace_id=workspace_id,
                    contact_id=contact_id,
                    status=ConversationStatus.OPEN
                )
                db.add(conversation)
                _commit(db, deadline, "get_or_open_conversation")
                db.refresh(conversation)
            return ConversationRecord.model_validate(conversation)

    async def get_or_open_conversation(self, workspace_id: int, contact_id: int) -> ConversationRecord:
        return await self._write("get_or_open_conversation", self._get_or_open_conversation, workspace_id, contact_id)

    # ───────────── Live updates ─────────────

    async def subscribe_to_new_messages(self, conversation_id: int, on_insert: MessageCallback) -> Subscription:
        return self.broker.subscribe(conversation_id, on_insert)

    async def unsubscribe(self, subscription: Subscription) -> None:
        self.broker.unsubscribe(subscription)
