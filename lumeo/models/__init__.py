"""
SQLModel tables for the Lumeo early access API
"""
from .signup import EarlyAccessSignup, utc_now

__all__ = [
    "EarlyAccessSignup",
    "utc_now",
]
