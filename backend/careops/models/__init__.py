from careops.models.user import User, UserRole
from careops.models.workspace import Workspace, WorkspaceStatus
from careops.models.contact import Contact
from careops.models.service import Service
from careops.models.conversation import Conversation, Message, ConversationStatus, MessageSender, MessageType
from careops.models.inventory import InventoryItem
