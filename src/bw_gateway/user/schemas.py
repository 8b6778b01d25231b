"""Request/response bodies for /auth. Routers wrap responses in ApiResponse."""

import re

from pydantic import BaseModel, EmailStr, Field, field_validator

# bcrypt only reads the first 72 bytes of a password
_PASSWORD_MAX = 72
_PASSWORD_RULES = (
    (re.compile(r"[A-Z]"), "an uppercase letter"),
    (re.compile(r"[a-z]"), "a lowercase letter"),
    (re.compile(r"\d"), "a digit"),
)


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=64, pattern=r"^[a-zA-Z0-9_]+$")
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=_PASSWORD_MAX)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("password")
    @classmethod
    def password_complexity(cls, v: str) -> str:
        missing = [label for pattern, label in _PASSWORD_RULES if not pattern.search(v)]
        if missing:
            raise ValueError(f"Password must contain {', '.join(missing)}")
        if len(v.encode()) > _PASSWORD_MAX:
            raise ValueError(f"Password must be at most {_PASSWORD_MAX} bytes")
        return v


class LoginRequest(BaseModel):
    username: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class UserInfo(BaseModel):
    user_id: str
    username: str
    email: str
    is_admin: bool = False


class RegisterResponse(BaseModel):
    user_id: str
    username: str
    email: str
    wallet_balance_cents: int
    created_at: str | None


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    user: UserInfo


class RefreshResponse(BaseModel):
    access_token: str
    expires_in: int


class ProfileResponse(BaseModel):
    user: UserInfo
    balance_cents: int
    balance_display: str
    daily_access_until: str | None = None
    has_daily_access: bool = False
