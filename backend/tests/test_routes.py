"""HTTP and WebSocket tests against the assembled app.

Covers: auth, the onboarding wizard endpoints, inventory, settings,
public contact intake, and the inbox REST + live socket.
"""

import pytest
from starlette.websockets import WebSocketDisconnect

from careops.models.workspace import Workspace, WorkspaceStatus
from careops.utils.security import create_access_token


def _activate(session_factory, workspace_id, slug="acme"):
    with session_factory() as db:
        db.query(Workspace).filter(Workspace.id == workspace_id).update(
            {"status": WorkspaceStatus.ACTIVE, "slug": slug}
        )
        db.commit()


@pytest.fixture
def staff_headers(session):
    token = create_access_token({"sub": "999", "workspace_id": session.workspace_id, "role": "staff"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def inbound(client, session, session_factory):
    """Post a public contact message into the (activated) workspace"""
    _activate(session_factory, session.workspace_id)

    def _post(name="Jane Doe", email="jane@example.com", message="Do you have availability Friday?"):
        response = client.post("/api/public/contact/acme", json={"name": name, "email": email, "message": message})
        assert response.status_code == 200
        return response.json()["conversation_id"]

    return _post


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Request-ID"]


def test_request_id_is_echoed(client):
    response = client.get("/", headers={"X-Request-ID": "abc123"})

    assert response.headers["X-Request-ID"] == "abc123"


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class TestAuthRoutes:
    def test_signup_then_login(self, client):
        signup = client.post("/api/auth/signup", json={
            "email": "new@shop.test", "password": "secret123",
            "business_name": "New Shop", "display_name": "Nia"
        })
        assert signup.status_code == 200
        assert signup.json()["session"]["role"] == "admin"

        login = client.post("/api/auth/login", json={"email": "new@shop.test", "password": "secret123"})
        assert login.status_code == 200
        token = login.json()["access_token"]

        me = client.get("/api/auth/session", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["user"]["display_name"] == "Nia"

    def test_short_password_is_a_validation_error(self, client):
        response = client.post("/api/auth/signup", json={
            "email": "new@shop.test", "password": "123", "business_name": "Shop", "display_name": "N"
        })

        assert response.status_code == 422

    def test_duplicate_signup(self, client, admin):
        response = client.post("/api/auth/signup", json={
            "email": "owner@acme.test", "password": "secret123", "business_name": "Again", "display_name": "O"
        })

        assert response.status_code == 400

    def test_bad_login(self, client, admin):
        response = client.post("/api/auth/login", json={"email": "owner@acme.test", "password": "nope-nope"})

        assert response.status_code == 401

    def test_protected_routes_need_a_token(self, client):
        assert client.get("/api/onboarding").status_code == 401
        assert client.get("/api/inventory", headers={"Authorization": "Bearer junk"}).status_code == 401


# ---------------------------------------------------------------------------
# Onboarding
# ---------------------------------------------------------------------------


class TestOnboardingRoutes:
    def test_resume(self, client, auth_headers):
        body = client.get("/api/onboarding", headers=auth_headers).json()

        assert body["wizard"]["current_step"] == 1
        assert body["wizard"]["step"]["fields"]["name"] == "Acme"
        assert [s["state"] for s in body["wizard"]["steps"]][:2] == ["current", "locked"]

    def test_edit_save_skip_back(self, client, auth_headers):
        client.post("/api/onboarding/fields", json={"name": "Acme Services"}, headers=auth_headers)

        saved = client.post("/api/onboarding/advance", headers=auth_headers).json()
        assert saved["success"] is True
        assert saved["wizard"]["current_step"] == 2
        assert saved["notifications"][0]["title"] == "Workspace saved!"

        skipped = client.post("/api/onboarding/skip", headers=auth_headers).json()
        assert skipped["wizard"]["current_step"] == 3

        back = client.post("/api/onboarding/back", headers=auth_headers).json()
        assert back["wizard"]["current_step"] == 2

        locked = client.post("/api/onboarding/steps/3", headers=auth_headers).json()
        assert locked["success"] is False

        jumped = client.post("/api/onboarding/steps/1", headers=auth_headers).json()
        assert jumped["wizard"]["current_step"] == 1

    def test_unknown_field(self, client, auth_headers):
        response = client.post("/api/onboarding/fields", json={"colour": "blue"}, headers=auth_headers)

        assert response.status_code == 422

    def test_failed_save_reports_notification(self, client, auth_headers, gateway, session_factory, session):
        with session_factory() as db:
            db.query(Workspace).filter(Workspace.id == session.workspace_id).update({"onboarding_step": 4})
            db.commit()
        client.post("/api/onboarding/fields", json={"name": "Clean", "duration": "soon"}, headers=auth_headers)

        body = client.post("/api/onboarding/advance", headers=auth_headers).json()

        assert body["success"] is False
        assert body["wizard"]["current_step"] == 4
        assert body["notifications"][0]["variant"] == "destructive"

    def test_activation_redirects_and_resets_wizard(self, client, auth_headers, session_factory, session):
        with session_factory() as db:
            db.query(Workspace).filter(Workspace.id == session.workspace_id).update({"onboarding_step": 8})
            db.commit()

        body = client.post("/api/onboarding/advance", headers=auth_headers).json()

        assert body["wizard"]["finished"] is True
        assert body["wizard"]["redirect_to"] == "/dashboard"
        assert client.app.state.wizards.get(session, client.app.state.gateway).finished is False


# ---------------------------------------------------------------------------
# Inventory and settings
# ---------------------------------------------------------------------------


class TestInventoryRoutes:
    def test_add_list_update_delete(self, client, auth_headers):
        added = client.post("/api/inventory", json={"name": "Gloves", "quantity": 15}, headers=auth_headers).json()
        item_id = added["item"]["id"]
        assert added["item"]["unit"] == "units"

        [listed] = client.get("/api/inventory", headers=auth_headers).json()
        assert listed["stock_percentage"] == 100.0
        assert listed["is_low_stock"] is False

        updated = client.patch(f"/api/inventory/{item_id}/quantity", json={"quantity": 5}, headers=auth_headers).json()
        assert updated["is_low_stock"] is True

        assert client.delete(f"/api/inventory/{item_id}", headers=auth_headers).status_code == 200
        assert client.delete(f"/api/inventory/{item_id}", headers=auth_headers).status_code == 404

    def test_staff_cannot_add_items(self, client, staff_headers):
        response = client.post("/api/inventory", json={"name": "Gloves"}, headers=staff_headers)

        assert response.status_code == 403

    def test_negative_quantity_rejected(self, client, auth_headers):
        response = client.post("/api/inventory", json={"name": "Gloves", "quantity": -1}, headers=auth_headers)

        assert response.status_code == 422


class TestSettingsRoutes:
    def test_get_and_patch(self, client, auth_headers):
        assert client.get("/api/settings", headers=auth_headers).json()["workspace"]["name"] == "Acme"

        body = client.patch("/api/settings", json={"address": "2 High St"}, headers=auth_headers).json()

        assert body["workspace"]["address"] == "2 High St"
        assert body["workspace"]["name"] == "Acme"

    def test_blank_name_rejected(self, client, auth_headers):
        response = client.patch("/api/settings", json={"name": "  "}, headers=auth_headers)

        assert response.status_code == 400

    def test_bad_contact_email_rejected(self, client, auth_headers):
        response = client.patch("/api/settings", json={"contact_email": "owner at acme"}, headers=auth_headers)

        assert response.status_code == 422
        assert client.get("/api/settings", headers=auth_headers).json()["workspace"]["contact_email"] is None

    def test_rename_moves_public_contact_link(self, client, auth_headers, session, session_factory):
        _activate(session_factory, session.workspace_id)

        body = client.patch("/api/settings", json={"name": "New Name"}, headers=auth_headers).json()

        assert body["workspace"]["slug"] == "new-name"
        contact = {"name": "Jane", "message": "Hi"}
        assert client.post("/api/public/contact/new-name", json=contact).status_code == 200
        assert client.post("/api/public/contact/acme", json=contact).status_code == 404


# ---------------------------------------------------------------------------
# Public intake and inbox
# ---------------------------------------------------------------------------


class TestInboxRoutes:
    def test_draft_workspace_does_not_accept_contact(self, client, admin):
        response = client.post("/api/public/contact/acme", json={"name": "Jane", "message": "Hi"})

        assert response.status_code == 404

    def test_bad_contact_email_rejected(self, client, session, session_factory):
        _activate(session_factory, session.workspace_id)

        response = client.post("/api/public/contact/acme", json={"name": "Jane", "email": "jane@", "message": "Hi"})

        assert response.status_code == 422

    def test_inbound_message_lands_in_inbox(self, client, auth_headers, inbound):
        cid = inbound()
        assert inbound(message="Or Saturday?") == cid

        conversations = client.get("/api/inbox/conversations", headers=auth_headers).json()["conversations"]
        assert [c["id"] for c in conversations] == [cid]
        assert conversations[0]["contact"]["name"] == "Jane Doe"

        filtered = client.get("/api/inbox/conversations?search=BOB", headers=auth_headers).json()
        assert filtered["conversations"] == []

        messages = client.get(f"/api/inbox/conversations/{cid}/messages", headers=auth_headers).json()["messages"]
        assert [m["content"] for m in messages] == ["Do you have availability Friday?", "Or Saturday?"]
        assert messages[0]["sender"] == "contact"

    def test_reply_pauses_automation(self, client, auth_headers, inbound):
        cid = inbound()

        body = client.post(f"/api/inbox/conversations/{cid}/messages", json={"content": "Yes, 10am works"},
                           headers=auth_headers).json()

        assert body["success"] is True
        assert body["message"]["sender"] == "staff"
        assert body["message"]["message_type"] == "manual"
        [conversation] = client.get("/api/inbox/conversations", headers=auth_headers).json()["conversations"]
        assert conversation["automation_paused"] is True

    def test_blank_reply_rejected(self, client, auth_headers, inbound):
        cid = inbound()

        response = client.post(f"/api/inbox/conversations/{cid}/messages", json={"content": "  "}, headers=auth_headers)

        assert response.status_code == 400

    def test_other_workspace_conversation_is_hidden(self, client, inbound, identity):
        cid = inbound()
        other = identity.sign_up("other@else.test", "secret123", "Elsewhere", "Otto")
        headers = {"Authorization": f"Bearer {other.access_token}"}

        assert client.get(f"/api/inbox/conversations/{cid}/messages", headers=headers).status_code == 404


class TestInboxSocket:
    def test_rejects_missing_token(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/api/inbox/ws") as ws:
                ws.receive_json()

    def test_select_receive_and_send(self, client, admin, inbound):
        cid = inbound()

        with client.websocket_connect(f"/api/inbox/ws?token={admin.access_token}") as ws:
            listing = ws.receive_json()
            assert listing["type"] == "conversations"
            assert [c["id"] for c in listing["conversations"]] == [cid]

            ws.send_json({"type": "select", "conversation_id": cid})
            snapshot = ws.receive_json()
            assert snapshot["type"] == "snapshot"
            assert len(snapshot["messages"]) == 1

            inbound(message="Still there?")
            live = ws.receive_json()
            assert live["type"] == "message"
            assert live["message"]["content"] == "Still there?"

            ws.send_json({"type": "send", "content": "Yes!"})
            echoed = ws.receive_json()
            assert echoed["type"] == "message"
            assert echoed["message"]["sender"] == "staff"
            sent = ws.receive_json()
            assert sent == {"type": "sent", "success": True, "message_id": echoed["message"]["id"]}

    def test_unknown_conversation(self, client, admin):
        with client.websocket_connect(f"/api/inbox/ws?token={admin.access_token}") as ws:
            ws.receive_json()
            ws.send_json({"type": "select", "conversation_id": 12345})

            assert ws.receive_json() == {"type": "error", "detail": "Conversation not found"}
