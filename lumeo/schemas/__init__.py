"""
Pydantic schemas for the Lumeo early access API
"""
from .signups import (
    ConfirmRequest,
    MessageResponse,
    ResendRequest,
    SignupStats,
    SubscribeRequest,
)

__all__ = [
    "ConfirmRequest",
    "MessageResponse",
    "ResendRequest",
    "SignupStats",
    "SubscribeRequest",
]
