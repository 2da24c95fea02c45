"""
Data access gateway contract.

The core components only talk to storage through this protocol, so they can be
driven by the SQLAlchemy adapter in production and by fakes or mocks in tests.
Every operation is a coroutine and raises GatewayError on any remote failure.
"""

from typing import Any, Callable, Dict, List, Optional, Protocol

from careops.schemas.inbox import ContactRecord, ConversationRecord, MessageCreate, MessageRecord
from careops.schemas.inventory import InventoryItemCreate, InventoryItemRecord
from careops.schemas.service import ServiceCreate, ServiceRecord
from careops.schemas.workspace import WorkspaceRecord
from careops.services.realtime import Subscription


MessageCallback = Callable[[MessageRecord], None]


class GatewayError(Exception):
    """A read or write against the data store failed (network, permission, timeout)."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"{operation}: {message}")


class DataGateway(Protocol):
    # Workspaces
    async def get_workspace(self, workspace_id: int) -> Optional[WorkspaceRecord]: ...

    async def get_workspace_by_slug(self, slug: str) -> Optional[WorkspaceRecord]: ...

    async def update_workspace(self, workspace_id: int, fields: Dict[str, Any]) -> WorkspaceRecord: ...

    # Services
    async def insert_service(self, service: ServiceCreate) -> ServiceRecord: ...

    # Inventory
    async def insert_inventory_item(self, item: InventoryItemCreate) -> InventoryItemRecord: ...

    async def list_inventory(self, workspace_id: int) -> List[InventoryItemRecord]: ...

    async def update_inventory_item(
        self, item_id: int, workspace_id: int, fields: Dict[str, Any]
    ) -> Optional[InventoryItemRecord]: ...

    async def delete_inventory_item(self, item_id: int, workspace_id: int) -> bool: ...

    # Inbox
    async def list_conversations(self, workspace_id: int) -> List[ConversationRecord]: ...

    async def get_conversation(self, conversation_id: int) -> Optional[ConversationRecord]: ...

    async def update_conversation(self, conversation_id: int, fields: Dict[str, Any]) -> ConversationRecord: ...

    async def list_messages(self, conversation_id: int) -> List[MessageRecord]: ...

    async def insert_message(self, message: MessageCreate) -> MessageRecord: ...

    async def find_or_create_contact(self, workspace_id: int, name: str, email: Optional[str]) -> ContactRecord: ...

    async def get_or_open_conversation(self, workspace_id: int, contact_id: int) -> ConversationRecord: ...

    # Live updates
    async def subscribe_to_new_messages(self, conversation_id: int, on_insert: MessageCallback) -> Subscription: ...

    async def unsubscribe(self, subscription: Subscription) -> None: ...
