from gatepass.models import Ticket, TicketStatus, TicketTransfer, TransferStatus
from gatepass.services.claims import NO_LONGER_TRANSFERABLE, PendingClaimResolver
from gatepass.services.notifications import TransferEventKind
from gatepass.services.transfers import TransferService


def owner_of(db, ticket_id):
    db.expire_all()
    return db.get(Ticket, ticket_id).user_id


def status_of(db, transfer_id):
    db.expire_all()
    return db.get(TicketTransfer, transfer_id).status


def test_pending_transfer_is_claimed_by_new_account(db, make_account, make_ticket, sink):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    pending = TransferService(db).submit(ticket_id, owner, email="newbie@mail.com")
    newbie = make_account(email="newbie@mail.com")

    outcome = PendingClaimResolver(db, events=sink).resolve_for_new_account(newbie, verified_email="newbie@mail.com")

    assert outcome.claimed == [pending.transfer_id]
    assert outcome.skipped == []
    assert owner_of(db, ticket_id) == newbie
    record = db.get(TicketTransfer, pending.transfer_id)
    assert record.status == TransferStatus.COMPLETED
    assert record.recipient_id == newbie
    assert [e.kind for e in sink.events] == [TransferEventKind.CLAIMED]


def test_claiming_twice_is_a_no_op(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    TransferService(db).submit(ticket_id, owner, email="newbie@mail.com")
    newbie = make_account(email="newbie@mail.com")
    resolver = PendingClaimResolver(db)

    assert len(resolver.resolve_for_new_account(newbie, verified_email="newbie@mail.com").claimed) == 1
    second = resolver.resolve_for_new_account(newbie, verified_email="newbie@mail.com")
    assert second.claimed == [] and second.skipped == []
    assert owner_of(db, ticket_id) == newbie


def test_phone_is_matched_after_normalization(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    pending = TransferService(db).submit(ticket_id, owner, phone="70 00 00 00")
    newbie = make_account(phone="+22670000000")

    outcome = PendingClaimResolver(db).resolve_for_new_account(newbie, verified_phone="+226 70 00 00 00")

    assert outcome.claimed == [pending.transfer_id]
    assert owner_of(db, ticket_id) == newbie


def test_all_matching_transfers_are_claimed(db, make_account, make_ticket):
    alice = make_account(email="alice@mail.com")
    bob = make_account(email="bob@mail.com")
    first = make_ticket(alice)
    second = make_ticket(bob)
    service = TransferService(db)
    by_email = service.submit(first, alice, email="newbie@mail.com")
    by_phone = service.submit(second, bob, phone="+22670000000")
    newbie = make_account(email="newbie@mail.com", phone="+22670000000")

    outcome = PendingClaimResolver(db).resolve_for_new_account(
        newbie, verified_email="newbie@mail.com", verified_phone="+22670000000"
    )

    assert sorted(outcome.claimed) == sorted([by_email.transfer_id, by_phone.transfer_id])
    assert owner_of(db, first) == newbie
    assert owner_of(db, second) == newbie


def test_cancelled_transfer_is_not_claimable(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    service = TransferService(db)
    pending = service.submit(ticket_id, owner, email="newbie@mail.com")
    service.cancel(pending.transfer_id, owner)
    newbie = make_account(email="newbie@mail.com")

    outcome = PendingClaimResolver(db).resolve_for_new_account(newbie, verified_email="newbie@mail.com")

    assert outcome.claimed == []
    assert owner_of(db, ticket_id) == owner
    assert status_of(db, pending.transfer_id) == TransferStatus.CANCELLED


def test_stale_ticket_retires_the_transfer(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    pending = TransferService(db).submit(ticket_id, owner, email="newbie@mail.com")
    ticket = db.get(Ticket, ticket_id)
    ticket.status = TicketStatus.USED
    db.commit()
    newbie = make_account(email="newbie@mail.com")

    outcome = PendingClaimResolver(db).resolve_for_new_account(newbie, verified_email="newbie@mail.com")

    assert outcome.claimed == []
    assert outcome.skipped == [(pending.transfer_id, NO_LONGER_TRANSFERABLE)]
    assert owner_of(db, ticket_id) == owner
    record = db.get(TicketTransfer, pending.transfer_id)
    assert record.status == TransferStatus.REJECTED
    assert record.status_reason == NO_LONGER_TRANSFERABLE


def test_sender_claiming_own_transfer_is_skipped(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    pending = TransferService(db).submit(ticket_id, owner, phone="+22670000000")

    outcome = PendingClaimResolver(db).resolve_for_new_account(owner, verified_phone="+22670000000")

    assert outcome.claimed == []
    assert [tid for tid, _ in outcome.skipped] == [pending.transfer_id]
    assert status_of(db, pending.transfer_id) == TransferStatus.PENDING


def test_unverified_contacts_match_nothing(db, make_account, make_ticket):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    TransferService(db).submit(ticket_id, owner, email="newbie@mail.com")
    resolver = PendingClaimResolver(db)
    assert resolver.list_pending_for(None, None) == []
    assert resolver.list_pending_for("not an email", None) == []
    assert len(resolver.list_pending_for("NEWBIE@mail.com", None)) == 1
