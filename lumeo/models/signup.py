from datetime import datetime, timezone
from typing import Optional

from sqlmodel import SQLModel, Field

from lumeo.core.db_types import UTCDateTime


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EarlyAccessSignup(SQLModel, table=True):
    """One early-access request per email address"""

    __tablename__ = "early_access_signups"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True, max_length=320)
    confirmation_token: str = Field(index=True, max_length=128)
    confirmed: bool = Field(default=False, index=True)
    confirmed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utc_now, index=True, sa_type=UTCDateTime)
    source: Optional[str] = Field(default=None, max_length=64)
    user_agent: Optional[str] = Field(default=None, max_length=512)
    ip_address: Optional[str] = Field(default=None, max_length=64)
    confirmation_sent_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
