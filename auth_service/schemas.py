"""Pydantic models (schemas) validating the auth service's input and output."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# --- Verification schemas ---

class SendVerificationRequest(BaseModel):
    """Email address a verification code should be issued for."""
    email: EmailStr


class SendVerificationResponse(BaseModel):
    message: str
    code: str
    expires_at: datetime


class VerifyCodeRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=6, max_length=6, description="Six-digit verification code")


class VerifyCodeResponse(BaseModel):
    message: str
    verified: bool


# --- User schemas ---

class UserCreate(BaseModel):
    """Fields required to register a new account."""
    username: str = Field(..., min_length=3, max_length=50, description="Username must be at least 3 characters")
    email: EmailStr
    password: str = Field(..., min_length=8, description="Password must be at least 8 characters")
    email_verified: bool
    name: Optional[str] = Field(None, max_length=100)


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileUpdate(BaseModel):
    """Editable profile fields; omitted fields are left untouched."""
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    name: Optional[str] = Field(None, max_length=100)


class UserResponse(BaseModel):
    """User data returned to clients (never includes the password hash)."""
    id: int
    email: str
    username: str
    name: Optional[str] = None
    email_verified: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    user: UserResponse
    message: str


class SessionResponse(BaseModel):
    user: UserResponse


class MessageResponse(BaseModel):
    message: str


# --- Token schemas ---

class TokenPayload(BaseModel):
    """Claims carried by a session token."""
    sub: str
    email: str
    username: str
    exp: int
    iat: Optional[int] = None
    jti: Optional[str] = None
