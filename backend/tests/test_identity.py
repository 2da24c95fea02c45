"""Tests for sign up, sign in and token resolution."""

from datetime import timedelta

import pytest

from careops.models.user import User, UserRole
from careops.models.workspace import Workspace, WorkspaceStatus
from careops.services.identity import AuthError
from careops.utils.security import create_access_token


class TestSignUp:
    def test_creates_admin_and_draft_workspace(self, admin, session_factory):
        with session_factory() as db:
            user = db.query(User).filter(User.email == "owner@acme.test").one()
            workspace = db.get(Workspace, user.workspace_id)

        assert user.role == UserRole.ADMIN
        assert user.display_name == "Olive Owner"
        assert user.hashed_password != "secret123"
        assert workspace.name == "Acme"
        assert workspace.slug == "acme"
        assert workspace.status == WorkspaceStatus.DRAFT
        assert workspace.onboarding_step == 1
        assert admin.session.is_admin

    def test_duplicate_email_is_rejected(self, admin, identity):
        with pytest.raises(AuthError, match="already registered"):
            identity.sign_up("owner@acme.test", "another1", "Acme Two", "Someone")

    @pytest.mark.parametrize("password", ["short", "x" * 73])
    def test_password_length_limits(self, identity, password):
        with pytest.raises(AuthError):
            identity.sign_up("new@acme.test", password, "Acme", "New")

    def test_business_name_required(self, identity):
        with pytest.raises(AuthError, match="Business name"):
            identity.sign_up("new@acme.test", "secret123", "   ", "New")


class TestSignIn:
    def test_valid_credentials(self, admin, identity):
        result = identity.sign_in("owner@acme.test", "secret123")

        assert result.session == admin.session
        assert result.token_type == "bearer"

    def test_wrong_password(self, admin, identity):
        with pytest.raises(AuthError) as excinfo:
            identity.sign_in("owner@acme.test", "wrong-password")
        assert excinfo.value.unauthorized

    def test_unknown_email(self, identity):
        with pytest.raises(AuthError):
            identity.sign_in("nobody@acme.test", "secret123")


class TestCurrentSession:
    def test_token_round_trip(self, admin, identity):
        session = identity.get_current_session(admin.access_token)

        assert session == admin.session

    @pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
    def test_invalid_tokens(self, identity, token):
        assert identity.get_current_session(token) is None

    def test_expired_token(self, admin, identity):
        token = create_access_token({"sub": str(admin.session.user_id)}, expires_delta=timedelta(seconds=-5))

        assert identity.get_current_session(token) is None

    def test_malformed_subject(self, identity):
        token = create_access_token({"sub": "not-a-number"})

        assert identity.get_current_session(token) is None

    def test_get_user(self, admin, identity):
        user = identity.get_user(admin.session.user_id)

        assert user.email == "owner@acme.test"
        assert identity.get_user(9999) is None
