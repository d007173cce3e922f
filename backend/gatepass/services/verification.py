"""One-time codes proving that an account controls its e-mail or phone.

Sign-up stores contacts as unverified. A contact becomes verified only once the
account echoes back the code sent to it, and only then are transfers addressed to
that contact handed over.
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from gatepass.core.config import settings
from gatepass.core.exceptions import VerificationCodeError
from gatepass.core.security import get_password_hash, verify_password
from gatepass.db.session import atomic
from gatepass.models.account import Account
from gatepass.models.base import as_utc, utcnow
from gatepass.models.verification import ContactVerification

CHANNELS = ("email", "phone")
CODE_LENGTH = 6


def generate_code() -> str:
    return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"


@dataclass(frozen=True)
class IssuedCode:
    channel: str
    contact: str
    expires_at: datetime


class ContactVerificationService:
    def __init__(self, db: Session, ttl_seconds: int | None = None, max_attempts: int | None = None) -> None:
        self.db = db
        self.ttl_seconds = ttl_seconds or settings.contact_code_ttl_seconds
        self.max_attempts = max_attempts or settings.contact_code_max_attempts

    @staticmethod
    def _contact(account: Account, channel: str) -> str:
        if channel not in CHANNELS:
            raise VerificationCodeError(f"Unknown verification channel {channel!r}")
        contact = account.email if channel == "email" else account.phone
        if not contact:
            raise VerificationCodeError(f"This account has no {channel} to verify")
        return contact

    def _current(self, account_id: int, channel: str) -> ContactVerification | None:
        stmt = select(ContactVerification).where(
            ContactVerification.account_id == account_id,
            ContactVerification.channel == channel,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def request_code(self, account: Account, channel: str) -> IssuedCode:
        """Replace any previous code for this channel with a fresh one and queue its delivery."""
        contact = self._contact(account, channel)
        code = generate_code()
        expires_at = utcnow() + timedelta(seconds=self.ttl_seconds)
        with atomic(self.db):
            row = self._current(account.id, channel)
            if row is None:
                row = ContactVerification(account_id=account.id, channel=channel)
                self.db.add(row)
            row.contact = contact
            row.code_hash = get_password_hash(code)
            row.attempts = 0
            row.expires_at = expires_at
            row.verified_at = None
        # E-mail/SMS delivery is handled outside this service; the code never reaches the log.
        logger.info(f"External delivery queued for {contact}: {channel} verification code for account {account.id}")
        return IssuedCode(channel=channel, contact=contact, expires_at=expires_at)

    def confirm(self, account: Account, channel: str, code: str) -> str:
        """Mark the contact verified if ``code`` matches. Returns the verified contact."""
        contact = self._contact(account, channel)
        row = self._current(account.id, channel)
        if row is None or row.verified_at is not None or row.contact != contact:
            raise VerificationCodeError("No verification code pending, request a new one")
        if as_utc(row.expires_at) < utcnow():
            raise VerificationCodeError("Verification code expired, request a new one")

        with atomic(self.db):
            # Count the attempt first so parallel guesses cannot exceed the limit.
            counted = self.db.execute(
                update(ContactVerification)
                .where(ContactVerification.id == row.id, ContactVerification.attempts < self.max_attempts)
                .values(attempts=ContactVerification.attempts + 1)
                .execution_options(synchronize_session="fetch")
            ).rowcount == 1
            matched = counted and verify_password((code or "").strip(), row.code_hash)
            if matched:
                row.verified_at = utcnow()
                if channel == "email":
                    account.email_verified = True
                else:
                    account.phone_verified = True

        if not counted:
            logger.warning(f"Account {account.id}: too many {channel} verification attempts")
            raise VerificationCodeError("Too many attempts, request a new code")
        if not matched:
            logger.warning(f"Account {account.id}: wrong {channel} verification code")
            raise VerificationCodeError("Invalid verification code")
        logger.info(f"Account {account.id} verified its {channel}")
        return contact
