from fastapi import APIRouter, Depends, HTTPException, status
from starlette.concurrency import run_in_threadpool
from careops.schemas.auth import LoginRequest, SessionContext, SignupRequest
from careops.services.identity import AuthError, IdentityProvider
from careops.routes.deps import get_identity, get_session

router = APIRouter()


def _auth_failure(e: AuthError) -> HTTPException:
    if e.unauthorized:
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


@router.post("/signup", response_model=dict)
async def signup(data: SignupRequest, identity: IdentityProvider = Depends(get_identity)):
    """Sign up - Create the admin user and a draft workspace"""
    try:
        result = await run_in_threadpool(
            identity.sign_up, data.email, data.password, data.business_name, data.display_name
        )
    except AuthError as e:
        raise _auth_failure(e)
    return result.model_dump(mode="json")


@router.post("/login", response_model=dict)
async def login(credentials: LoginRequest, identity: IdentityProvider = Depends(get_identity)):
    """Login - Get access token"""
    try:
        result = await run_in_threadpool(identity.sign_in, credentials.email, credentials.password)
    except AuthError as e:
        raise _auth_failure(e)
    return result.model_dump(mode="json")


@router.get("/session", response_model=dict)
async def current_session(
    session: SessionContext = Depends(get_session),
    identity: IdentityProvider = Depends(get_identity)
):
    user = await run_in_threadpool(identity.get_user, session.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User no longer exists")

    return {
        "session": session.model_dump(mode="json"),
        "user": {
            "id": user.id,
            "email": user.email,
            "display_name": user.display_name,
            "role": user.role.value,
            "workspace_id": user.workspace_id
        }
    }
