"""Shared fixtures: a fresh in-memory database per test and a signed-up admin."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"

import time
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

import careops.models  # noqa: F401  registers tables
from careops.core.onboarding import WizardRegistry
from careops.database import Base, build_engine
from careops.models.contact import Contact
from careops.models.conversation import Conversation, ConversationStatus, Message, MessageSender, MessageType
from careops.schemas.inbox import MessageRecord
from careops.services.identity import IdentityProvider
from careops.services.realtime import MessageBroker
from careops.services.sql_gateway import SqlAlchemyGateway


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def broker():
    return MessageBroker()


@pytest.fixture
def gateway(session_factory, broker):
    return SqlAlchemyGateway(session_factory, broker=broker, timeout=5)


@pytest.fixture
def identity(session_factory):
    return IdentityProvider(session_factory)


@pytest.fixture
def admin(identity):
    """Signed-up admin of a fresh draft workspace"""
    return identity.sign_up("owner@acme.test", "secret123", "Acme", "Olive Owner")


@pytest.fixture
def session(admin):
    return admin.session


@pytest.fixture
def auth_headers(admin):
    return {"Authorization": f"Bearer {admin.access_token}"}


@pytest.fixture
def make_conversation(session_factory, session):
    """Insert a contact with an open conversation; returns the conversation id"""

    def _make(name="Jane Doe", email=None, last_message_at=None, workspace_id=None):
        with session_factory() as db:
            contact = Contact(workspace_id=workspace_id or session.workspace_id, name=name, email=email)
            db.add(contact)
            db.flush()
            conversation = Conversation(
                workspace_id=workspace_id or session.workspace_id,
                contact_id=contact.id,
                status=ConversationStatus.OPEN,
                last_message_at=last_message_at
            )
            db.add(conversation)
            db.commit()
            return conversation.id

    return _make


@pytest.fixture
def add_message(session_factory):
    """Insert a message row directly, bypassing the broker"""

    def _add(conversation_id, content="Hello", sender=MessageSender.CONTACT, created_at=None):
        with session_factory() as db:
            message = Message(
                conversation_id=conversation_id,
                sender=sender,
                content=content,
                message_type=MessageType.MANUAL,
                created_at=created_at or datetime.utcnow()
            )
            db.add(message)
            db.commit()
            return MessageRecord.model_validate(message)

    return _add


@pytest.fixture
def make_message():
    """Build a message record without touching the database"""

    def _make(id, conversation_id=1, seconds=0, content="hi", sender=MessageSender.CONTACT):
        return MessageRecord(
            id=id,
            conversation_id=conversation_id,
            sender=sender,
            content=content,
            message_type=MessageType.MANUAL,
            created_at=datetime(2024, 1, 1, 12, 0, 0) + timedelta(seconds=seconds)
        )

    return _make


@pytest.fixture
def client(gateway, identity):
    from careops.main import app

    saved = (app.state.gateway, app.state.identity, app.state.wizards)
    app.state.gateway = gateway
    app.state.identity = identity
    app.state.wizards = WizardRegistry()
    with TestClient(app) as test_client:
        yield test_client
    app.state.gateway, app.state.identity, app.state.wizards = saved


@pytest.fixture
def slow_session(monkeypatch):
    """Make a ``Session`` method sleep before it does its work"""

    def _slow(method, seconds=0.2):
        real = getattr(Session, method)

        def slowed(self, *args, **kwargs):
            time.sleep(seconds)
            return real(self, *args, **kwargs)

        monkeypatch.setattr(Session, method, slowed)

    return _slow
