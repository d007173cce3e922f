"""Ticket transfer state machine.

    PENDING ──claim──▶ COMPLETED
       │ ├──sender──▶ CANCELLED
       │ └──policy──▶ REJECTED
    (instant transfers are written as COMPLETED directly)

Terminal states never change. Every transition is a conditional UPDATE on the
expected current state, and ticket reassignment is a conditional UPDATE on the
expected owner/status, so concurrent requests cannot both win.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from loguru import logger
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gatepass.core.exceptions import (
    AlreadyTransferredError,
    InvalidRecipientError,
    NotCancellableError,
    TransferNotFoundError,
)
from gatepass.db.session import atomic
from gatepass.models.account import Account
from gatepass.models.base import utcnow
from gatepass.models.ticket import Ticket, TicketStatus
from gatepass.models.transfer import TicketTransfer, TransferStatus
from gatepass.services.contact import RecipientContact
from gatepass.services.notifications import TransferEvent, TransferEventKind
from gatepass.services.transfer_validator import TransferValidator


class EventSink(Protocol):
    def emit(self, event: TransferEvent) -> None: ...


@dataclass(frozen=True)
class SubmitResult:
    transfer_id: str
    instant: bool
    status: TransferStatus
    recipient_id: int | None = None


def publish(sink: EventSink | None, event: TransferEvent) -> None:
    """Hand an event to the dispatcher; a failing dispatcher never fails the transfer."""
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception:
        logger.exception(f"Could not queue {event.kind.value} notification for transfer {event.transfer_id}")


def move_ticket(db: Session, ticket_id: str, from_account: int, to_account: int) -> bool:
    """Reassign a VALID, unscanned ticket owned by ``from_account``. False if it no longer is."""
    result = db.execute(
        update(Ticket)
        .where(
            Ticket.id == ticket_id,
            Ticket.user_id == from_account,
            Ticket.status == TicketStatus.VALID,
            Ticket.scanned_at.is_(None),
        )
        .values(user_id=to_account, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


def set_transfer_status(db: Session, transfer_id: str, new_status: TransferStatus, **values) -> bool:
    """PENDING -> ``new_status``. False if the record was not PENDING any more."""
    result = db.execute(
        update(TicketTransfer)
        .where(TicketTransfer.id == transfer_id, TicketTransfer.status == TransferStatus.PENDING)
        .values(status=new_status, updated_at=utcnow(), **values)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


class TransferService:
    def __init__(self, db: Session, validator: TransferValidator | None = None, events: EventSink | None = None) -> None:
        self.db = db
        self.validator = validator or TransferValidator()
        self.events = events

    # -- lookups -----------------------------------------------------------

    def resolve_account(self, contact: RecipientContact) -> Account | None:
        """Active account that has proven control of ``contact``; None means the transfer waits."""
        if contact.email:
            conds = (Account.email == contact.email, Account.email_verified.is_(True))
        else:
            conds = (Account.phone == contact.phone, Account.phone_verified.is_(True))
        return self.db.execute(select(Account).where(*conds, Account.is_active.is_(True))).scalars().first()

    def get(self, transfer_id: str) -> TicketTransfer | None:
        return self.db.get(TicketTransfer, transfer_id)

    def history(self, account_id: int) -> list[TicketTransfer]:
        stmt = (
            select(TicketTransfer)
            .where(or_(TicketTransfer.sender_id == account_id, TicketTransfer.recipient_id == account_id))
            .order_by(TicketTransfer.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars())

    # -- transitions -------------------------------------------------------

    def submit(
        self,
        ticket_id: str,
        sender_id: int,
        email: str | None = None,
        phone: str | None = None,
        name: str | None = None,
        message: str | None = None,
    ) -> SubmitResult:
        contact = self.validator.validate(self.db, ticket_id, sender_id, email=email, phone=phone, name=name).contact
        sender = self.db.get(Account, sender_id)
        if sender is not None and contact.identifier in (sender.email, sender.phone):
            raise InvalidRecipientError("You cannot transfer a ticket to yourself")
        recipient = self.resolve_account(contact)
        message = (message or "").strip() or None

        try:
            with atomic(self.db):
                # Re-check under a row lock; the earlier validation is only advisory.
                ticket = self.db.execute(
                    select(Ticket)
                    .where(Ticket.id == ticket_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one_or_none()
                self.validator.check_ticket(self.db, ticket, sender_id)

                record = TicketTransfer(
                    ticket_id=ticket_id,
                    sender_id=sender_id,
                    recipient_email=contact.email,
                    recipient_phone=contact.phone,
                    recipient_name=contact.name or (recipient.full_name if recipient else None),
                    message=message,
                )
                if recipient is not None:
                    if not move_ticket(self.db, ticket_id, sender_id, recipient.id):
                        raise AlreadyTransferredError("This ticket has already been transferred")
                    record.recipient_id = recipient.id
                    record.status = TransferStatus.COMPLETED
                else:
                    record.status = TransferStatus.PENDING
                self.db.add(record)
                self.db.flush()
        except IntegrityError as exc:
            # Lost the race on the one-active-transfer index
            raise AlreadyTransferredError("This ticket has already been transferred") from exc

        instant = recipient is not None
        logger.info(
            f"Transfer {record.id} of ticket {ticket_id} by account {sender_id} "
            f"{'completed instantly' if instant else 'pending for ' + contact.kind}"
        )
        publish(self.events, TransferEvent(
            kind=TransferEventKind.COMPLETED_INSTANT if instant else TransferEventKind.PENDING_CREATED,
            transfer_id=record.id,
            ticket_id=ticket_id,
            sender_id=sender_id,
            recipient_id=record.recipient_id,
            recipient_contact=contact.identifier,
            recipient_name=record.recipient_name,
            message=message,
        ))
        return SubmitResult(transfer_id=record.id, instant=instant, status=record.status, recipient_id=record.recipient_id)

    def cancel(self, transfer_id: str, requester_id: int) -> TicketTransfer:
        with atomic(self.db):
            record = self._lock_transfer(transfer_id)
            # Other people's transfers are reported as missing
            if record is None or record.sender_id != requester_id:
                raise TransferNotFoundError("Transfer not found")
            if record.status != TransferStatus.PENDING or not set_transfer_status(self.db, transfer_id, TransferStatus.CANCELLED):
                raise NotCancellableError(f"Only pending transfers can be cancelled (status: {record.status.value})")
        self.db.refresh(record)
        logger.info(f"Transfer {transfer_id} cancelled by sender {requester_id}")
        publish(self.events, self._event(TransferEventKind.CANCELLED, record))
        return record

    def reject(self, transfer_id: str, moderator_id: int, reason: str | None = None) -> TicketTransfer:
        reason = (reason or "").strip()[:255] or "Rejected by moderation"
        with atomic(self.db):
            record = self._lock_transfer(transfer_id)
            if record is None:
                raise TransferNotFoundError("Transfer not found")
            if record.status != TransferStatus.PENDING or not set_transfer_status(
                self.db, transfer_id, TransferStatus.REJECTED, status_reason=reason
            ):
                raise NotCancellableError(f"Only pending transfers can be rejected (status: {record.status.value})")
        self.db.refresh(record)
        logger.info(f"Transfer {transfer_id} rejected by moderator {moderator_id}: {reason}")
        publish(self.events, self._event(TransferEventKind.REJECTED, record, reason=reason))
        return record

    # -- helpers -----------------------------------------------------------

    def _lock_transfer(self, transfer_id: str) -> TicketTransfer | None:
        return self.db.execute(
            select(TicketTransfer)
            .where(TicketTransfer.id == transfer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    @staticmethod
    def _event(kind: TransferEventKind, record: TicketTransfer, reason: str | None = None) -> TransferEvent:
        return TransferEvent(
            kind=kind,
            transfer_id=record.id,
            ticket_id=record.ticket_id,
            sender_id=record.sender_id,
            recipient_id=record.recipient_id,
            recipient_contact=record.recipient_email or record.recipient_phone,
            recipient_name=record.recipient_name,
            message=record.message,
            reason=reason,
        )
