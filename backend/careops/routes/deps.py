from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from careops.schemas.auth import SessionContext
from careops.services.identity import IdentityProvider

bearer_scheme = HTTPBearer(auto_error=False)


def get_identity(request: Request) -> IdentityProvider:
    return request.app.state.identity


def get_gateway(request: Request):
    return request.app.state.gateway


def get_wizards(request: Request):
    return request.app.state.wizards


def get_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    identity: IdentityProvider = Depends(get_identity)
) -> SessionContext:
    """Resolve the bearer token into the caller's session"""
    session = identity.get_current_session(credentials.credentials if credentials else None)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


def get_workspace_session(session: SessionContext = Depends(get_session)) -> SessionContext:
    if not session.workspace_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No workspace for this account")
    return session


def require_admin(session: SessionContext = Depends(get_workspace_session)) -> SessionContext:
    if not session.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can do this")
    return session
