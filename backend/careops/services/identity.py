import logging
from datetime import timedelta
from typing import Optional
from careops.config import settings
from careops.database import SessionLocal
from careops.models.user import User, UserRole
from careops.models.workspace import Workspace, WorkspaceStatus
from careops.schemas.auth import AuthResult, SessionContext, check_password_length
from careops.utils.security import create_access_token, decode_access_token, get_password_hash, verify_password
from careops.utils.slug import slugify

logger = logging.getLogger(__name__)


class AuthError(Exception):
    def __init__(self, message: str, unauthorized: bool = False):
        self.message = message
        self.unauthorized = unauthorized
        super().__init__(message)


class IdentityProvider:
    """Resolves who is calling and provisions accounts"""

    def __init__(self, session_factory=SessionLocal):
        self._session_factory = session_factory

    def get_current_session(self, token: Optional[str]) -> Optional[SessionContext]:
        if not token:
            return None
        claims = decode_access_token(token)
        if not claims or "sub" not in claims:
            return None
        try:
            return SessionContext(
                user_id=int(claims["sub"]),
                workspace_id=claims.get("workspace_id"),
                role=claims.get("role", UserRole.STAFF.value)
            )
        except (TypeError, ValueError):
            logger.warning("Rejected token with malformed claims")
            return None

    def _issue(self, user: User) -> AuthResult:
        session = SessionContext(user_id=user.id, workspace_id=user.workspace_id, role=user.role)
        access_token = create_access_token(
            data={"sub": str(user.id), "workspace_id": user.workspace_id, "role": user.role.value},
            expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        return AuthResult(access_token=access_token, session=session)

    def sign_in(self, email: str, password: str) -> AuthResult:
        with self._session_factory() as db:
            user = db.query(User).filter(User.email == email).first()
            if not user or not verify_password(password, user.hashed_password):
                raise AuthError("Incorrect email or password", unauthorized=True)
            logger.info("User %s signed in", user.id)
            return self._issue(user)

    def sign_up(self, email: str, password: str, business_name: str, display_name: str) -> AuthResult:
        """Create the admin user together with a draft workspace for the business"""
        try:
            check_password_length(password)
        except ValueError as e:
            raise AuthError(str(e))
        if not business_name.strip():
            raise AuthError("Business name is required")

        with self._session_factory() as db:
            if db.query(User).filter(User.email == email).first():
                raise AuthError("Email already registered")

            workspace = Workspace(
                name=business_name,
                slug=slugify(business_name),
                status=WorkspaceStatus.DRAFT,
                onboarding_step=1
            )
            db.add(workspace)
            db.flush()  # Get workspace.id

            user = User(
                email=email,
                hashed_password=get_password_hash(password),
                display_name=display_name,
                role=UserRole.ADMIN,
                workspace_id=workspace.id
            )
            db.add(user)
            db.commit()
            db.refresh(user)

            logger.info("Provisioned workspace %s for user %s", workspace.id, user.id)
            return self._issue(user)

    def get_user(self, user_id: int) -> Optional[User]:
        with self._session_factory() as db:
            return db.query(User).filter(User.id == user_id).first()
