import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from gatepass.core.exceptions import (
    AlreadyTransferredError,
    InvalidRecipientError,
    NotCancellableError,
    NotOwnerError,
    TransferNotFoundError,
    TransientStoreError,
)
from gatepass.db.session import SessionLocal, atomic
from gatepass.models import Ticket, TicketTransfer, TransferStatus
from gatepass.services.notifications import TransferEventKind
from gatepass.services.transfer_validator import TransferValidator
from gatepass.services import transfers as transfer_module
from gatepass.services.transfers import TransferService


def owner_of(db, ticket_id):
    db.expire_all()
    return db.get(Ticket, ticket_id).user_id


def test_registered_recipient_gets_ticket_instantly(db, make_account, make_ticket, sink):
    owner = make_account(email="owner@mail.com")
    friend = make_account(email="friend@mail.com")
    ticket_id = make_ticket(owner)

    result = TransferService(db, events=sink).submit(ticket_id, owner, email="Friend@Mail.com", message=" enjoy ")

    assert result.instant is True
    assert result.status == TransferStatus.COMPLETED
    assert result.recipient_id == friend
    assert owner_of(db, ticket_id) == friend
    record = db.get(TicketTransfer, result.transfer_id)
    assert record.recipient_email == "friend@mail.com"
    assert record.message == "enjoy"
    assert [e.kind for e in sink.events] == [TransferEventKind.COMPLETED_INSTANT]
    assert sink.events[0].recipient_id == friend


def test_unknown_recipient_leaves_transfer_pending(db, make_account, make_ticket, sink):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)

    result = TransferService(db, events=sink).submit(ticket_id, owner, phone="70 00 00 00")

    assert result.instant is False
    assert result.status == TransferStatus.PENDING
    assert owner_of(db, ticket_id) == owner
    record = db.get(TicketTransfer, result.transfer_id)
    assert record.recipient_phone == "+22670000000"
    assert record.recipient_id is None
    assert sink.events[0].kind == TransferEventKind.PENDING_CREATED
    assert sink.events[0].recipient_contact == "+22670000000"


def test_inactive_account_is_treated_as_unregistered(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    make_account(email="blocked@mail.com", is_active=False)
    ticket_id = make_ticket(owner)
    result = TransferService(db).submit(ticket_id, owner, email="blocked@mail.com")
    assert result.instant is False


def test_self_transfer_is_rejected(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    with pytest.raises(InvalidRecipientError):
        TransferService(db).submit(ticket_id, owner, email="OWNER@mail.com")
    assert db.query(TicketTransfer).count() == 0


def test_second_submit_for_pending_ticket_fails(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    service = TransferService(db)
    service.submit(ticket_id, owner, email="first@mail.com")
    with pytest.raises(AlreadyTransferredError):
        service.submit(ticket_id, owner, email="second@mail.com")
    assert db.query(TicketTransfer).count() == 1


def test_sender_cannot_transfer_again_after_instant_transfer(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    friend = make_account(email="friend@mail.com")
    ticket_id = make_ticket(owner)
    service = TransferService(db)
    service.submit(ticket_id, owner, email="friend@mail.com")
    with pytest.raises(AlreadyTransferredError):
        service.submit(ticket_id, owner, email="other@mail.com")
    # The new owner passes the owner check but the ticket already moved once.
    with pytest.raises(AlreadyTransferredError):
        service.submit(ticket_id, friend, email="other@mail.com")


def test_stranger_cannot_transfer(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    stranger = make_account(email="stranger@mail.com")
    ticket_id = make_ticket(owner)
    with pytest.raises(NotOwnerError):
        TransferService(db).submit(ticket_id, stranger, email="friend@mail.com")


class _ValidatorMissingActiveTransfer(TransferValidator):
    """Behaves as if a concurrent request inserted its record after our check."""

    @staticmethod
    def active_transfer(db, ticket_id):
        return None


def test_store_rejects_a_second_active_transfer(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    TransferService(db).submit(ticket_id, owner, email="first@mail.com")

    racing = TransferService(db, validator=_ValidatorMissingActiveTransfer())
    with pytest.raises(AlreadyTransferredError):
        racing.submit(ticket_id, owner, email="second@mail.com")
    assert db.query(TicketTransfer).count() == 1


def test_notification_failure_does_not_fail_transfer(db, make_account, make_ticket, broken_sink):
    owner = make_account(email="owner@mail.com")
    friend = make_account(email="friend@mail.com")
    ticket_id = make_ticket(owner)
    result = TransferService(db, events=broken_sink).submit(ticket_id, owner, email="friend@mail.com")
    assert result.instant is True
    assert owner_of(db, ticket_id) == friend


def test_cancel_pending_transfer(db, make_account, make_ticket, sink):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    service = TransferService(db, events=sink)
    submitted = service.submit(ticket_id, owner, email="later@mail.com")

    record = service.cancel(submitted.transfer_id, owner)

    assert record.status == TransferStatus.CANCELLED
    assert owner_of(db, ticket_id) == owner
    assert sink.events[-1].kind == TransferEventKind.CANCELLED
    # A cancelled transfer no longer blocks a new one
    again = service.submit(ticket_id, owner, email="someone-else@mail.com")
    assert again.status == TransferStatus.PENDING


def test_cancel_is_final(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    service = TransferService(db)
    submitted = service.submit(ticket_id, owner, email="later@mail.com")
    service.cancel(submitted.transfer_id, owner)
    with pytest.raises(NotCancellableError):
        service.cancel(submitted.transfer_id, owner)


def test_completed_transfer_cannot_be_cancelled(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    make_account(email="friend@mail.com")
    ticket_id = make_ticket(owner)
    service = TransferService(db)
    submitted = service.submit(ticket_id, owner, email="friend@mail.com")
    with pytest.raises(NotCancellableError):
        service.cancel(submitted.transfer_id, owner)


def test_only_sender_sees_their_transfer_to_cancel(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    stranger = make_account(email="stranger@mail.com")
    ticket_id = make_ticket(owner)
    service = TransferService(db)
    submitted = service.submit(ticket_id, owner, email="later@mail.com")
    with pytest.raises(TransferNotFoundError):
        service.cancel(submitted.transfer_id, stranger)
    with pytest.raises(TransferNotFoundError):
        service.cancel("no-such-transfer", owner)


def test_reject_pending_transfer(db, make_account, make_ticket, sink):
    owner = make_account(email="owner@mail.com")
    admin = make_account(email="admin@mail.com", role="admin")
    ticket_id = make_ticket(owner)
    service = TransferService(db, events=sink)
    submitted = service.submit(ticket_id, owner, email="later@mail.com")

    record = service.reject(submitted.transfer_id, admin, reason="suspected resale")

    assert record.status == TransferStatus.REJECTED
    assert record.status_reason == "suspected resale"
    assert sink.events[-1].kind == TransferEventKind.REJECTED
    assert sink.events[-1].reason == "suspected resale"
    with pytest.raises(NotCancellableError):
        service.reject(submitted.transfer_id, admin)


def test_history_lists_sent_and_received(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    friend = make_account(email="friend@mail.com")
    first = make_ticket(owner)
    second = make_ticket(friend)
    service = TransferService(db)
    sent = service.submit(first, owner, email="friend@mail.com")
    pending = service.submit(second, friend, email="later@mail.com")

    assert {t.id for t in service.history(owner)} == {sent.transfer_id}
    assert {t.id for t in service.history(friend)} == {sent.transfer_id, pending.transfer_id}


class _OwnerChangesBeforeCommit(TransferValidator):
    """Passes the locked re-check, then another session gives the ticket away."""

    def __init__(self, new_owner):
        super().__init__()
        self.new_owner = new_owner
        self.checks = 0

    def check_ticket(self, db, ticket, sender_id):
        checked = super().check_ticket(db, ticket, sender_id)
        self.checks += 1
        if self.checks == 2:
            other = SessionLocal()
            try:
                other.execute(update(Ticket).where(Ticket.id == ticket.id).values(user_id=self.new_owner))
                other.commit()
            finally:
                other.close()
        return checked


def test_instant_transfer_loses_to_concurrent_owner_change(db, make_account, make_ticket, sink):
    owner = make_account(email="owner@mail.com")
    make_account(email="friend@mail.com")
    winner = make_account(email="winner@mail.com")
    ticket_id = make_ticket(owner)

    service = TransferService(db, validator=_OwnerChangesBeforeCommit(winner), events=sink)
    with pytest.raises(AlreadyTransferredError):
        service.submit(ticket_id, owner, email="friend@mail.com")

    assert owner_of(db, ticket_id) == winner
    assert db.query(TicketTransfer).count() == 0
    assert sink.events == []


def test_driver_failure_inside_atomic_is_transient(db):
    with pytest.raises(TransientStoreError) as exc:
        with atomic(db):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))
    assert exc.value.code == "transient"
    assert exc.value.status_code == 503


def test_store_outage_during_submit_leaves_nothing_behind(db, make_account, make_ticket, monkeypatch):
    owner = make_account(email="owner@mail.com")
    make_account(email="friend@mail.com")
    ticket_id = make_ticket(owner)

    def unavailable(*args, **kwargs):
        raise OperationalError("UPDATE tickets", {}, Exception("server closed the connection"))

    monkeypatch.setattr(transfer_module, "move_ticket", unavailable)
    with pytest.raises(TransientStoreError):
        TransferService(db).submit(ticket_id, owner, email="friend@mail.com")
    assert db.query(TicketTransfer).count() == 0
    assert owner_of(db, ticket_id) == owner
