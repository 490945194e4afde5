"""
Operator endpoints, guarded by a static API key
"""
import secrets
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from sqlmodel import Session

from lumeo.core.config import settings
from lumeo.core.database import get_session
from lumeo.schemas.signups import SignupStats
from lumeo.services.signup_store import SignupStore

router = APIRouter(prefix="/admin", tags=["admin"])

admin_key_header = APIKeyHeader(name="X-Admin-Key", auto_error=False)


def require_admin_key(api_key: Annotated[Optional[str], Depends(admin_key_header)]) -> None:
    """
    Dependency that checks the X-Admin-Key header

    Raises:
        HTTPException: 503 when no key is configured, 401 when the key is missing or wrong
    """
    if not settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin access is not configured"
        )
    if not api_key or not secrets.compare_digest(api_key, settings.admin_api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin key"
        )


@router.get("/stats", response_model=SignupStats, dependencies=[Depends(require_admin_key)])
def signup_stats(session: Session = Depends(get_session)):
    """Total, confirmed, and last-24h signup counts"""
    return SignupStats(**SignupStore.stats(session))
