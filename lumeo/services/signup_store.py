"""
Persistence for early access signups
"""
import logging
import time
from datetime import datetime, timedelta
from typing import Callable, List, Optional, TypeVar

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlmodel import Session, select, func

from lumeo.core.config import settings
from lumeo.core.errors import DuplicateSignupError, InvalidConfirmationError, StoreUnavailableError
from lumeo.models.signup import EarlyAccessSignup, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SignupStore:
    """Operations over the early_access_signups table"""

    @staticmethod
    def _run(session: Session, operation: str, fn: Callable[[], T]) -> T:
        """
        Run a store operation, retrying transient connectivity errors a few times.

        Integrity and validation errors are never retried. Anything else that
        comes out of SQLAlchemy is logged and surfaced as StoreUnavailableError.
        """
        attempts = max(0, settings.store_retry_attempts) + 1
        delay = settings.store_retry_backoff_seconds
        for attempt in range(1, attempts + 1):
            try:
                return fn()
            except (IntegrityError, DuplicateSignupError, InvalidConfirmationError):
                raise
            except OperationalError:
                session.rollback()
                if attempt == attempts:
                    logger.exception("Store %s failed after %d attempts", operation, attempts)
                    raise StoreUnavailableError()
                logger.warning("Store %s failed (attempt %d/%d), retrying", operation, attempt, attempts)
                time.sleep(delay)
                delay *= 2
            except SQLAlchemyError:
                session.rollback()
                logger.exception("Store %s failed", operation)
                raise StoreUnavailableError()
        raise StoreUnavailableError()

    @staticmethod
    def create(
        session: Session,
        *,
        email: str,
        token: str,
        source: Optional[str] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> EarlyAccessSignup:
        """
        Insert a pending signup

        Raises:
            DuplicateSignupError: the email already has a record
            StoreUnavailableError: the database could not be reached
        """
        def _insert() -> EarlyAccessSignup:
            record = EarlyAccessSignup(
                email=email.strip().lower(),
                confirmation_token=token,
                confirmed=False,
                source=source,
                user_agent=(user_agent or None) and user_agent[:512],
                ip_address=(ip_address or None) and ip_address[:64],
            )
            session.add(record)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise DuplicateSignupError()
            session.refresh(record)
            return record

        return SignupStore._run(session, "create", _insert)

    @staticmethod
    def find_by_email(session: Session, email: str) -> Optional[EarlyAccessSignup]:
        normalized = email.strip().lower()
        return SignupStore._run(
            session,
            "find_by_email",
            lambda: session.exec(select(EarlyAccessSignup).where(EarlyAccessSignup.email == normalized)).first(),
        )

    @staticmethod
    def confirm(session: Session, email: str, token: str) -> EarlyAccessSignup:
        """
        Mark a pending signup confirmed with a single conditional UPDATE.

        Only a row that matches email and token and is still unconfirmed is
        touched, so two concurrent requests carrying the same token cannot
        both succeed. The updated row comes back from the same statement,
        so nothing is read after the commit.

        Raises:
            InvalidConfirmationError: no pending row matched
        """
        normalized = email.strip().lower()

        def _update() -> list:
            stmt = (
                update(EarlyAccessSignup)
                .where(
                    EarlyAccessSignup.email == normalized,
                    EarlyAccessSignup.confirmation_token == token,
                    EarlyAccessSignup.confirmed == False,  # noqa: E712
                )
                .values(confirmed=True, confirmed_at=utc_now())
                .returning(*EarlyAccessSignup.__table__.c)
            )
            rows = session.connection().execute(stmt).mappings().all()
            session.commit()
            return rows

        rows = SignupStore._run(session, "confirm", _update)
        if len(rows) != 1:
            raise InvalidConfirmationError()
        return EarlyAccessSignup(**dict(rows[0]))

    @staticmethod
    def mark_confirmation_sent(session: Session, record: EarlyAccessSignup) -> None:
        def _mark() -> None:
            record.confirmation_sent_at = utc_now()
            session.add(record)
            session.commit()

        SignupStore._run(session, "mark_confirmation_sent", _mark)

    @staticmethod
    def list_unsent_pending(session: Session, limit: int = 100) -> List[EarlyAccessSignup]:
        """Pending signups whose welcome email never went out"""
        stmt = (
            select(EarlyAccessSignup)
            .where(
                EarlyAccessSignup.confirmed == False,  # noqa: E712
                EarlyAccessSignup.confirmation_sent_at == None,  # noqa: E711
            )
            .order_by(EarlyAccessSignup.created_at)
            .limit(limit)
        )
        return SignupStore._run(session, "list_unsent_pending", lambda: list(session.exec(stmt).all()))

    @staticmethod
    def stats(session: Session, now: Optional[datetime] = None) -> dict:
        """Total, confirmed, and last-24h signup counts"""
        since = (now or utc_now()) - timedelta(days=1)

        def _count(*conditions) -> int:
            stmt = select(func.count()).select_from(EarlyAccessSignup)
            for condition in conditions:
                stmt = stmt.where(condition)
            return session.exec(stmt).one() or 0

        def _stats() -> dict:
            return {
                "total": _count(),
                "confirmed": _count(EarlyAccessSignup.confirmed == True),  # noqa: E712
                "recent": _count(EarlyAccessSignup.created_at >= since),
            }

        return SignupStore._run(session, "stats", _stats)
