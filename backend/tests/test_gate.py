import base64

import pytest

from gatepass.core.exceptions import EntryDeniedError
from gatepass.models import Ticket, TicketStatus
from gatepass.services.entry_token import EntryTokenCodec
from gatepass.services.gate import GateService


class FakeClock:
    now = 1_700_000_000

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def codec(clock):
    return EntryTokenCodec("gate-secret", ttl_seconds=300, clock=clock)


def test_valid_token_admits_once(db, make_account, make_ticket, codec):
    owner = make_account(email="owner@mail.com")
    scanner = make_account(email="scanner@mail.com", role="scanner")
    ticket_id = make_ticket(owner)
    token = codec.issue(ticket_id).token
    gate = GateService(db, codec)

    ticket = gate.admit(token, "Gate B", scanner)

    assert ticket.status == TicketStatus.USED
    assert ticket.scan_location == "Gate B"
    assert ticket.scanned_by == scanner
    assert ticket.scanned_at is not None
    with pytest.raises(EntryDeniedError):
        gate.admit(token, "Gate B", scanner)


def test_check_does_not_consume(db, make_account, make_ticket, codec):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    token = codec.issue(ticket_id).token
    gate = GateService(db, codec)

    assert gate.check(token).id == ticket_id
    assert gate.check(token).id == ticket_id
    db.expire_all()
    assert db.get(Ticket, ticket_id).status == TicketStatus.VALID


def test_expired_token_is_denied(db, make_account, make_ticket, codec, clock):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    token = codec.issue(ticket_id).token
    clock.now += 301
    with pytest.raises(EntryDeniedError) as exc:
        GateService(db, codec).check(token)
    assert "expired_token" in exc.value.reason
    # Devices only see the generic message
    assert exc.value.message == "Entry denied"


def test_token_for_unknown_ticket_is_denied(db, codec):
    with pytest.raises(EntryDeniedError):
        GateService(db, codec).check(codec.issue("no-such-ticket").token)


def test_void_ticket_is_denied_even_with_fresh_token(db, make_account, make_ticket, codec):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    token = codec.issue(ticket_id).token
    ticket = db.get(Ticket, ticket_id)
    ticket.status = TicketStatus.VOID
    db.commit()
    with pytest.raises(EntryDeniedError):
        GateService(db, codec).check(token)


def test_token_signed_elsewhere_is_denied(db, make_account, make_ticket, codec, clock):
    owner = make_account(email="owner@mail.com")
    ticket_id = make_ticket(owner)
    forged = EntryTokenCodec("someone-elses-secret", clock=clock).issue(ticket_id).token
    with pytest.raises(EntryDeniedError) as exc:
        GateService(db, codec).check(forged)
    assert "invalid_token" in exc.value.reason


def test_non_ascii_signature_is_denied(db, codec):
    bundle = '{"p":"{\\"id\\":\\"x\\"}","s":"\\u00e9"}'
    token = base64.urlsafe_b64encode(bundle.encode()).rstrip(b"=").decode()
    with pytest.raises(EntryDeniedError) as exc:
        GateService(db, codec).check(token)
    assert "invalid_token" in exc.value.reason
