from __future__ import annotations

from loguru import logger
from sqlalchemy import update
from sqlalchemy.orm import Session

from gatepass.core.exceptions import EntryDeniedError, InvalidEntryTokenError
from gatepass.db.session import atomic
from gatepass.models.base import utcnow
from gatepass.models.ticket import Ticket, TicketStatus
from gatepass.services.entry_token import EntryTokenCodec


class GateService:
    """Entry decisions for scanned tokens.

    A verified token only names a ticket; admission also requires the ticket to be
    VALID and unscanned right now. Every refusal raises EntryDeniedError whose
    ``reason`` goes to the log, never to the scanning device.
    """

    def __init__(self, db: Session, codec: EntryTokenCodec) -> None:
        self.db = db
        self.codec = codec

    def _admissible(self, token: str, location: str | None) -> Ticket:
        try:
            ticket_id = self.codec.verify(token)
        except InvalidEntryTokenError as exc:
            self._deny(f"{exc.code}: {exc.message}", location)
        ticket = self.db.get(Ticket, ticket_id)
        if ticket is None:
            self._deny(f"unknown ticket {ticket_id}", location)
        if ticket.status != TicketStatus.VALID or ticket.scanned_at is not None:
            self._deny(f"ticket {ticket_id} is {ticket.status.value}", location)
        return ticket

    def check(self, token: str, location: str | None = None) -> Ticket:
        """Same decision as ``admit`` without consuming the ticket."""
        return self._admissible(token, location)

    def admit(self, token: str, location: str | None, scanner_id: int) -> Ticket:
        ticket = self._admissible(token, location)
        now = utcnow()
        with atomic(self.db):
            result = self.db.execute(
                update(Ticket)
                .where(Ticket.id == ticket.id, Ticket.status == TicketStatus.VALID, Ticket.scanned_at.is_(None))
                .values(status=TicketStatus.USED, scanned_at=now, scan_location=location, scanned_by=scanner_id, updated_at=now)
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount != 1:
                self._deny(f"ticket {ticket.id} scanned concurrently", location)
        self.db.refresh(ticket)
        logger.info(f"Entry granted for ticket {ticket.id} at {location or 'unknown location'} by scanner {scanner_id}")
        return ticket

    @staticmethod
    def _deny(reason: str, location: str | None):
        logger.warning(f"Entry denied at {location or 'unknown location'}: {reason}")
        raise EntryDeniedError(reason)
