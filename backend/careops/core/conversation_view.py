"""
Live view of one conversation at a time.

Selecting a conversation takes a snapshot of its history, then arms an insert
subscription and does one catch-up fetch, so rows inserted between the two are
not lost. Every path into the message list (snapshot, catch-up, subscription,
send response) goes through the same merge, keyed on message id and kept in
(created_at, id) order, so a message is never shown twice.
"""

import logging
from bisect import insort
from typing import Callable, List, Optional

from careops.models.conversation import MessageSender, MessageType
from careops.schemas.auth import SessionContext
from careops.schemas.inbox import ConversationRecord, MessageCreate, MessageRecord
from careops.services.gateway import DataGateway, GatewayError
from careops.services.notifications import Notifier
from careops.services.realtime import Subscription

logger = logging.getLogger(__name__)


def _message_order(message: MessageRecord):
    return (message.created_at, message.id)


class ConversationViewController:
    def __init__(self, session: SessionContext, gateway: DataGateway, notifier: Optional[Notifier] = None):
        self.session = session
        self.gateway = gateway
        self.notifier = notifier or Notifier()
        self.conversations: List[ConversationRecord] = []
        self.selected_id: Optional[int] = None
        self.messages: List[MessageRecord] = []
        self.draft = ""
        self.sending = False
        self._message_ids = set()
        self._subscription: Optional[Subscription] = None
        self._selection = 0
        self._selecting = False
        self._listeners: List[Callable[[MessageRecord], None]] = []

    @property
    def selected_conversation(self) -> Optional[ConversationRecord]:
        for conversation in self.conversations:
            if conversation.id == self.selected_id:
                return conversation
        return None

    # ───────────── Conversation list ─────────────

    async def load_conversations(self) -> List[ConversationRecord]:
        if not self.session.workspace_id:
            return []
        try:
            self.conversations = await self.gateway.list_conversations(self.session.workspace_id)
        except GatewayError as e:
            self.notifier.error("Could not load conversations", e.message)
        return self.conversations

    def filtered_conversations(self, query: str = "") -> List[ConversationRecord]:
        """Case-insensitive match on contact name; conversations without a named contact never match"""
        if not query:
            return list(self.conversations)
        needle = query.lower()
        return [
            c for c in self.conversations
            if c.contact and c.contact.name and needle in c.contact.name.lower()
        ]

    # ───────────── Selection ─────────────

    async def select(self, conversation_id: int) -> bool:
        """Show one conversation. Live arrivals are merged but not announced
        until this returns, so listeners never hear of a message before the
        selection that contains it."""
        self._selection += 1
        selection = self._selection
        self._selecting = True
        try:
            return await self._select(conversation_id, selection)
        finally:
            if selection == self._selection:
                self._selecting = False

    async def _select(self, conversation_id: int, selection: int) -> bool:
        previous, self._subscription = self._subscription, None
        self.selected_id = conversation_id
        self.messages = []
        self._message_ids = set()
        if previous:
            await self.gateway.unsubscribe(previous)

        try:
            snapshot = await self.gateway.list_messages(conversation_id)
        except GatewayError as e:
            if selection == self._selection:
                self.notifier.error("Could not load messages", e.message)
            return False
        if selection != self._selection:
            return False
        self._merge(snapshot)

        subscription = await self.gateway.subscribe_to_new_messages(conversation_id, self._on_insert)
        if selection != self._selection:
            await self.gateway.unsubscribe(subscription)
            return False
        self._subscription = subscription

        # Rows inserted between the snapshot and the subscription
        await self.refresh()
        return selection == self._selection

    async def refresh(self) -> int:
        """Re-fetch the selected conversation and merge anything missing"""
        if self.selected_id is None:
            return 0
        selection = self._selection
        try:
            messages = await self.gateway.list_messages(self.selected_id)
        except GatewayError as e:
            logger.warning("Catch-up fetch for conversation %s failed: %s", self.selected_id, e)
            return 0
        if selection != self._selection:
            return 0
        return self._merge(messages)

    async def close(self) -> None:
        self._selection += 1
        self._selecting = False
        subscription, self._subscription = self._subscription, None
        if subscription:
            await self.gateway.unsubscribe(subscription)

    # ───────────── Message list ─────────────

    def add_listener(self, callback: Callable[[MessageRecord], None]) -> Callable[[], None]:
        """Call back for every live message added after selection. Returns a remover."""
        self._listeners.append(callback)

        def remove():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def _announce(self, message: MessageRecord) -> None:
        for listener in list(self._listeners):
            listener(message)

    def _on_insert(self, message: MessageRecord) -> None:
        if message.conversation_id != self.selected_id:
            return
        if self._accept(message) and not self._selecting:
            self._announce(message)

    def _accept(self, message: MessageRecord) -> bool:
        if message.id in self._message_ids:
            return False
        insort(self.messages, message, key=_message_order)
        self._message_ids.add(message.id)
        return True

    def _merge(self, messages: List[MessageRecord]) -> int:
        return sum(1 for message in messages if self._accept(message))

    def _replace_conversation(self, updated: ConversationRecord) -> None:
        for index, conversation in enumerate(self.conversations):
            if conversation.id == updated.id:
                if updated.contact is None:
                    updated = updated.model_copy(update={"contact": conversation.contact})
                self.conversations[index] = updated
                return

    # ───────────── Send ─────────────

    async def send(self) -> Optional[MessageRecord]:
        content = self.draft
        conversation_id = self.selected_id
        if not content.strip() or conversation_id is None or self.sending:
            return None

        self.sending = True
        try:
            try:
                record = await self.gateway.insert_message(MessageCreate(
                    conversation_id=conversation_id,
                    sender=MessageSender.STAFF,
                    content=content,
                    message_type=MessageType.MANUAL
                ))
            except GatewayError as e:
                self.notifier.error("Failed to send message", e.message)
                return None

            # Usually already delivered by the subscription
            if conversation_id == self.selected_id and self._accept(record):
                self._announce(record)
            self.draft = ""

            # A human replied, so automated replies stop for this conversation
            try:
                updated = await self.gateway.update_conversation(conversation_id, {"automation_paused": True})
            except GatewayError as e:
                logger.error("Could not pause automation for conversation %s: %s", conversation_id, e)
                self.notifier.error("Message sent, but automation is still active", e.message)
            else:
                self._replace_conversation(updated)
            return record
        finally:
            self.sending = False
