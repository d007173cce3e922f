from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from gatepass.core.exceptions import InvalidRecipientError, TicketNotTransferableError
from gatepass.db.session import atomic
from gatepass.models.transfer import TicketTransfer, TransferStatus
from gatepass.services.contact import normalize_email, normalize_phone
from gatepass.services.notifications import TransferEvent, TransferEventKind
from gatepass.services.transfers import EventSink, move_ticket, publish, set_transfer_status

NO_LONGER_TRANSFERABLE = "ticket no longer transferable"


@dataclass
class ClaimOutcome:
    claimed: list[str] = field(default_factory=list)
    # (transfer id, reason) pairs that were matched but not claimed
    skipped: list[tuple[str, str]] = field(default_factory=list)


def _normalized_contacts(email: str | None, phone: str | None) -> tuple[str | None, str | None]:
    norm_email = norm_phone = None
    if email:
        try:
            norm_email = normalize_email(email)
        except InvalidRecipientError:
            logger.warning("Ignoring malformed verified e-mail while matching pending transfers")
    if phone:
        try:
            norm_phone = normalize_phone(phone)
        except InvalidRecipientError:
            logger.warning("Ignoring malformed verified phone while matching pending transfers")
    return norm_email, norm_phone


class PendingClaimResolver:
    """Completes transfers that were addressed to a contact before it had an account.

    Each matching record is handled in its own transaction so one stale ticket
    does not block the others, and re-running after a partial failure only picks
    up what is still PENDING.
    """

    def __init__(self, db: Session, events: EventSink | None = None) -> None:
        self.db = db
        self.events = events

    def list_pending_for(self, verified_email: str | None = None, verified_phone: str | None = None) -> list[TicketTransfer]:
        email, phone = _normalized_contacts(verified_email, verified_phone)
        conds = []
        if email:
            conds.append(TicketTransfer.recipient_email == email)
        if phone:
            conds.append(TicketTransfer.recipient_phone == phone)
        if not conds:
            return []
        stmt = (
            select(TicketTransfer)
            .where(TicketTransfer.status == TransferStatus.PENDING, or_(*conds))
            .order_by(TicketTransfer.created_at.asc())
        )
        return list(self.db.execute(stmt).scalars())

    def resolve_for_new_account(
        self,
        account_id: int,
        verified_email: str | None = None,
        verified_phone: str | None = None,
    ) -> ClaimOutcome:
        outcome = ClaimOutcome()
        candidates = [(t.id, t.ticket_id, t.sender_id) for t in self.list_pending_for(verified_email, verified_phone)]
        for transfer_id, ticket_id, sender_id in candidates:
            if sender_id == account_id:
                # Sender verified the very contact they sent to; leave it for them to cancel.
                outcome.skipped.append((transfer_id, "recipient is the sender"))
                continue
            try:
                with atomic(self.db):
                    if not set_transfer_status(self.db, transfer_id, TransferStatus.COMPLETED, recipient_id=account_id):
                        # Cancelled, rejected or claimed concurrently
                        continue
                    if not move_ticket(self.db, ticket_id, sender_id, account_id):
                        raise TicketNotTransferableError(NO_LONGER_TRANSFERABLE)
            except TicketNotTransferableError:
                self._retire(transfer_id)
                outcome.skipped.append((transfer_id, NO_LONGER_TRANSFERABLE))
                continue
            outcome.claimed.append(transfer_id)
            logger.info(f"Transfer {transfer_id} of ticket {ticket_id} claimed by account {account_id}")
            record = self.db.get(TicketTransfer, transfer_id)
            publish(self.events, TransferEvent(
                kind=TransferEventKind.CLAIMED,
                transfer_id=transfer_id,
                ticket_id=ticket_id,
                sender_id=sender_id,
                recipient_id=account_id,
                recipient_contact=(record.recipient_email or record.recipient_phone) if record else None,
                recipient_name=record.recipient_name if record else None,
            ))
        if outcome.claimed or outcome.skipped:
            logger.info(f"Account {account_id}: claimed {len(outcome.claimed)} transfer(s), skipped {len(outcome.skipped)}")
        return outcome

    def _retire(self, transfer_id: str) -> None:
        # The ticket was used, voided or moved elsewhere: the transfer can never complete.
        with atomic(self.db):
            retired = set_transfer_status(self.db, transfer_id, TransferStatus.REJECTED, status_reason=NO_LONGER_TRANSFERABLE)
        if retired:
            logger.warning(f"Pending transfer {transfer_id} rejected: {NO_LONGER_TRANSFERABLE}")
