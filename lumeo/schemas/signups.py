"""
Pydantic schemas for the signup endpoints
"""
import re
from typing import Optional

from pydantic import BaseModel, Field, StrictStr, field_validator


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DEFAULT_SOURCE = "hero-form"


def normalize_email(email: object) -> str:
    """Lowercase and strip an email, rejecting anything not shaped like local@domain.tld"""
    if not isinstance(email, str):
        raise ValueError("A valid email is required")
    normalized = email.strip().lower()
    if not normalized or len(normalized) > 320 or not EMAIL_PATTERN.match(normalized):
        raise ValueError("Invalid email format")
    return normalized


class SubscribeRequest(BaseModel):
    """Body of POST /subscribe"""
    email: StrictStr
    source: Optional[StrictStr] = Field(default=None, max_length=64)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator("source")
    @classmethod
    def _clean_source(cls, value: Optional[str]) -> Optional[str]:
        value = (value or "").strip()
        return value or None


class ResendRequest(BaseModel):
    """Body of POST /resend"""
    email: StrictStr

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return normalize_email(value)


class ConfirmRequest(BaseModel):
    """Body of POST /confirm"""
    token: StrictStr = Field(min_length=1, max_length=128)
    email: StrictStr = Field(min_length=1)

    @field_validator("token")
    @classmethod
    def _strip_token(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Token is required")
        return value

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return normalize_email(value)


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class SignupStats(BaseModel):
    total: int
    confirmed: int
    recent: int
