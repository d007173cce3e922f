from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from gatepass.core.exceptions import (
    AlreadyTransferredError,
    NotOwnerError,
    TicketNotTransferableError,
)
from gatepass.models.ticket import Ticket, TicketStatus
from gatepass.models.transfer import ACTIVE_TRANSFER_STATUSES, TicketTransfer, TransferStatus
from gatepass.services.contact import RecipientContact, normalize_recipient


@dataclass(frozen=True)
class ValidatedTransfer:
    ticket: Ticket
    contact: RecipientContact


class TransferValidator:
    """Read-only guard run before any transfer state change.

    Rules are checked in a fixed order and the first failure wins:

    1. exactly one well-formed recipient identifier (``invalid_recipient``)
    2. ticket exists, is VALID and was never scanned (``not_transferable``)
    3. sender currently owns the ticket (``not_owner``)
    4. no PENDING/COMPLETED transfer exists for the ticket (``already_transferred``)
    5. free tickets are transferable only if the policy allows it (``not_transferable``)

    The transfer service repeats rules 2-4 inside its transaction; passing here is
    not a reservation.
    """

    def __init__(self, allow_free_tickets: bool = True) -> None:
        self.allow_free_tickets = allow_free_tickets

    def validate(
        self,
        db: Session,
        ticket_id: str,
        sender_id: int,
        email: str | None = None,
        phone: str | None = None,
        name: str | None = None,
    ) -> ValidatedTransfer:
        contact = normalize_recipient(email=email, phone=phone, name=name)
        ticket = db.get(Ticket, ticket_id)
        self.check_ticket(db, ticket, sender_id)
        return ValidatedTransfer(ticket=ticket, contact=contact)  # type: ignore[arg-type]

    def check_ticket(self, db: Session, ticket: Ticket | None, sender_id: int) -> Ticket:
        """Rules 2-5 against an already loaded (possibly locked) ticket row."""
        if ticket is None:
            raise TicketNotTransferableError("Ticket not found")
        if ticket.status != TicketStatus.VALID or ticket.scanned_at is not None:
            raise TicketNotTransferableError(f"This ticket cannot be transferred (status: {ticket.status.value})")
        if ticket.user_id != sender_id:
            if self._sent_by(db, ticket.id, sender_id):
                raise AlreadyTransferredError("This ticket has already been transferred")
            raise NotOwnerError("You do not own this ticket")
        if self.active_transfer(db, ticket.id) is not None:
            raise AlreadyTransferredError("This ticket has already been transferred")
        if ticket.is_free and not self.allow_free_tickets:
            raise TicketNotTransferableError("Free tickets cannot be transferred")
        return ticket

    @staticmethod
    def active_transfer(db: Session, ticket_id: str) -> TicketTransfer | None:
        stmt = select(TicketTransfer).where(
            TicketTransfer.ticket_id == ticket_id,
            TicketTransfer.status.in_(ACTIVE_TRANSFER_STATUSES),
        )
        return db.execute(stmt).scalars().first()

    @staticmethod
    def _sent_by(db: Session, ticket_id: str, sender_id: int) -> bool:
        # A former owner who already gave the ticket away gets the more useful answer.
        stmt = select(TicketTransfer.id).where(
            TicketTransfer.ticket_id == ticket_id,
            TicketTransfer.sender_id == sender_id,
            TicketTransfer.status == TransferStatus.COMPLETED,
        )
        return db.execute(stmt).first() is not None
