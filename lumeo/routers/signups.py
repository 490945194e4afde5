"""
Public early access endpoints: subscribe, confirm, resend
"""
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from lumeo.core.config import settings
from lumeo.core.database import get_session
from lumeo.core.errors import InvalidConfirmationError, SignupError, SignupRateLimitedError
from lumeo.core.rate_limit import get_client_ip, limiter, signup_limiter
from lumeo.schemas.signups import (
    ConfirmRequest,
    MessageResponse,
    ResendRequest,
    SubscribeRequest,
    normalize_email,
)
from lumeo.services.email_service import EmailService, get_email_service
from lumeo.services.signups import MESSAGE_RESEND, SignupService

router = APIRouter(tags=["early-access"])


def _check_signup_rate(request: Request, email: str) -> str:
    ip = get_client_ip(request)
    if not signup_limiter.hit(ip, email):
        raise SignupRateLimitedError(retry_after=signup_limiter.retry_after(ip, email))
    return ip


def _site_redirect(path: str, **params: str) -> RedirectResponse:
    url = f"{settings.base_url}{path}"
    if params:
        url = f"{url}?{urlencode(params)}"
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


@router.post("/subscribe", response_model=MessageResponse)
@limiter.limit(settings.route_rate_limit)
def subscribe(
    request: Request,
    payload: SubscribeRequest,
    session: Session = Depends(get_session),
    emails: EmailService = Depends(get_email_service),
):
    """
    Join the early access list

    - **email**: address to register (case-insensitive)
    - **source**: optional attribution tag, defaults to `hero-form`
    """
    ip = _check_signup_rate(request, payload.email)
    result = SignupService.subscribe(
        session,
        emails,
        email=payload.email,
        source=payload.source,
        user_agent=request.headers.get("user-agent"),
        ip_address=ip,
    )
    return MessageResponse(message=result.message)


@router.get("/confirm")
def confirm_link(
    token: Optional[str] = None,
    email: Optional[str] = None,
    session: Session = Depends(get_session),
    emails: EmailService = Depends(get_email_service),
):
    """Target of the emailed link; redirects to the confirmed page or back to the signup page"""
    if not token or not email:
        return _site_redirect(settings.error_path, error="invalid_link")
    try:
        normalized = normalize_email(email)
    except ValueError:
        return _site_redirect(settings.error_path, error="invalid_link")

    try:
        SignupService.confirm(session, emails, email=normalized, token=token.strip())
    except InvalidConfirmationError:
        return _site_redirect(settings.error_path, error="invalid_token")
    except SignupError:
        return _site_redirect(settings.error_path, error="server_error")
    return _site_redirect(settings.confirmed_path)


@router.post("/confirm", response_model=MessageResponse)
def confirm(
    payload: ConfirmRequest,
    session: Session = Depends(get_session),
    emails: EmailService = Depends(get_email_service),
):
    """
    Confirm an email from the front-end confirm page

    - **token**: token from the confirmation link
    - **email**: email from the confirmation link
    """
    result = SignupService.confirm(session, emails, email=payload.email, token=payload.token)
    return MessageResponse(message=result.message)


@router.post("/resend", response_model=MessageResponse)
@limiter.limit(settings.route_rate_limit)
def resend(
    request: Request,
    payload: ResendRequest,
    session: Session = Depends(get_session),
    emails: EmailService = Depends(get_email_service),
):
    """Send the confirmation link again; the answer is the same whether or not the email is registered"""
    _check_signup_rate(request, payload.email)
    SignupService.resend(session, emails, email=payload.email)
    return MessageResponse(message=MESSAGE_RESEND)
