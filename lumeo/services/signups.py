"""
Early access signup and confirmation flow
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import timezone
from enum import Enum
from typing import Optional

from sqlmodel import Session

from lumeo.core.errors import DuplicateSignupError, InvalidConfirmationError, StoreUnavailableError
from lumeo.models.signup import EarlyAccessSignup
from lumeo.schemas.signups import DEFAULT_SOURCE
from lumeo.services.email_service import EmailService
from lumeo.services.signup_store import SignupStore

logger = logging.getLogger(__name__)

MESSAGE_CHECK_EMAIL = "Check your email to confirm your early access spot."
MESSAGE_ALREADY_PENDING = "You're already on the list. Check your email for the confirmation link."
MESSAGE_ALREADY_CONFIRMED = "You're already confirmed. See you on the inside."
MESSAGE_CONFIRMED = "Email confirmed. Welcome to Lumeo early access."
MESSAGE_RESEND = "If that email is waiting for confirmation, a new link is on its way."


class SignupStatus(str, Enum):
    CREATED = "created"
    PENDING = "pending"
    CONFIRMED = "confirmed"


@dataclass
class SignupResult:
    status: SignupStatus
    message: str
    signup: EarlyAccessSignup
    email_sent: bool = False


def generate_confirmation_token() -> str:
    return secrets.token_urlsafe(32)


def _base36(value: int) -> str:
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    out = ""
    while True:
        value, rem = divmod(value, 36)
        out = digits[rem] + out
        if value == 0:
            return out


def node_id_for(signup: EarlyAccessSignup) -> str:
    """Display id shown in emails, e.g. ALICE_LQ3K9Z"""
    local = signup.email.split("@", 1)[0].upper()
    created = signup.created_at
    if created is None:
        return f"{local}_0"
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    millis = int(created.timestamp() * 1000)
    return f"{local}_{_base36(millis)}"


class SignupService:
    """Signup, confirmation and resend, on top of SignupStore and EmailService"""

    @staticmethod
    def _existing_result(signup: EarlyAccessSignup) -> SignupResult:
        if signup.confirmed:
            return SignupResult(SignupStatus.CONFIRMED, MESSAGE_ALREADY_CONFIRMED, signup)
        return SignupResult(SignupStatus.PENDING, MESSAGE_ALREADY_PENDING, signup)

    @staticmethod
    def _send_welcome(session: Session, emails: EmailService, signup: EarlyAccessSignup) -> bool:
        sent = emails.send_welcome_email(
            to_email=signup.email,
            token=signup.confirmation_token,
            node_id=node_id_for(signup),
        )
        if sent:
            try:
                SignupStore.mark_confirmation_sent(session, signup)
            except StoreUnavailableError:
                # Delivered but unmarked; resend_pending may send it once more
                logger.error("Could not record welcome email delivery for signup id=%s", signup.id)
        else:
            # The signup stays; scripts/resend_pending.py or POST /resend can retry later
            logger.warning("Welcome email not delivered for signup id=%s", signup.id)
        return sent

    @staticmethod
    def subscribe(
        session: Session,
        emails: EmailService,
        *,
        email: str,
        source: Optional[str] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> SignupResult:
        """
        Register an email for early access

        An email that already has a record is answered without side effects:
        no new token, no new welcome email. Explicit resends go through
        ``resend``.
        """
        existing = SignupStore.find_by_email(session, email)
        if existing:
            return SignupService._existing_result(existing)

        try:
            signup = SignupStore.create(
                session,
                email=email,
                token=generate_confirmation_token(),
                source=source or DEFAULT_SOURCE,
                user_agent=user_agent,
                ip_address=ip_address,
            )
        except DuplicateSignupError:
            # Lost a race with a concurrent signup for the same email
            existing = SignupStore.find_by_email(session, email)
            if existing is None:
                raise
            return SignupService._existing_result(existing)

        logger.info("New early access signup id=%s source=%s", signup.id, signup.source)
        sent = SignupService._send_welcome(session, emails, signup)
        return SignupResult(SignupStatus.CREATED, MESSAGE_CHECK_EMAIL, signup, email_sent=sent)

    @staticmethod
    def confirm(session: Session, emails: EmailService, *, email: str, token: str) -> SignupResult:
        """
        Confirm a pending signup

        Raises:
            InvalidConfirmationError: token does not match, or was already used
        """
        if not email or not token:
            raise InvalidConfirmationError()

        signup = SignupStore.confirm(session, email, token)
        logger.info("Early access signup confirmed id=%s", signup.id)

        sent = emails.send_confirmation_email(to_email=signup.email, node_id=node_id_for(signup))
        if not sent:
            logger.warning("Confirmation email not delivered for signup id=%s", signup.id)
        return SignupResult(SignupStatus.CONFIRMED, MESSAGE_CONFIRMED, signup, email_sent=sent)

    @staticmethod
    def resend(session: Session, emails: EmailService, *, email: str) -> bool:
        """Send the welcome email again, with the stored token, to a pending signup"""
        signup = SignupStore.find_by_email(session, email)
        if signup is None or signup.confirmed:
            return False
        return SignupService._send_welcome(session, emails, signup)

    @staticmethod
    def resend_pending(session: Session, emails: EmailService, *, limit: int = 100) -> int:
        """Retry welcome emails that never went out; returns how many were delivered"""
        delivered = 0
        for signup in SignupStore.list_unsent_pending(session, limit=limit):
            if SignupService._send_welcome(session, emails, signup):
                delivered += 1
        return delivered
