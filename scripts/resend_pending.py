#!/usr/bin/env python3
"""
Resend welcome emails to pending signups whose first email never went out
"""
import argparse
import sys
from pathlib import Path

project_root = Path(__file__).resolve().parents[1]
sys.path.append(str(project_root))

from sqlmodel import Session

from lumeo.core.database import engine
from lumeo.core.logging_config import setup_logging
from lumeo.services.email_service import email_service
from lumeo.services.signup_store import SignupStore
from lumeo.services.signups import SignupService


def main() -> int:
    parser = argparse.ArgumentParser(description="Resend welcome emails that were never delivered")
    parser.add_argument("--limit", type=int, default=100, help="Maximum signups to process")
    parser.add_argument("--dry-run", action="store_true", help="Only list the affected signups")
    args = parser.parse_args()

    setup_logging()

    with Session(engine) as session:
        if args.dry_run:
            pending = SignupStore.list_unsent_pending(session, limit=args.limit)
            for signup in pending:
                print(f"{signup.email}\tcreated {signup.created_at.isoformat()}")
            print(f"{len(pending)} pending signup(s) without a delivered welcome email")
            return 0

        delivered = SignupService.resend_pending(session, email_service, limit=args.limit)

    print(f"✅ Delivered {delivered} welcome email(s)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
