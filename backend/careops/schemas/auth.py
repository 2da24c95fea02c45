from pydantic import BaseModel, validator
from typing import Optional
from careops.models.user import UserRole


def check_password_length(v: str) -> str:
    if len(v.encode('utf-8')) > 72:
        raise ValueError('Password cannot be longer than 72 characters')
    if len(v) < 6:
        raise ValueError('Password must be at least 6 characters')
    return v


class SignupRequest(BaseModel):
    email: str
    password: str
    business_name: str
    display_name: str
    
    @validator('password')
    def password_length(cls, v):
        return check_password_length(v)


class LoginRequest(BaseModel):
    email: str
    password: str


class SessionContext(BaseModel):
    """The authenticated caller, injected into the core components"""
    user_id: int
    workspace_id: Optional[int] = None
    role: UserRole = UserRole.STAFF
    
    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class AuthResult(BaseModel):
    access_token: str
    token_type: str = "bearer"
    session: SessionContext
