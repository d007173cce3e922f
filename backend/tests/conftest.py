import os
import tempfile
from decimal import Decimal
from pathlib import Path

# Settings and the engine are built at import time, so the environment has to be
# in place before anything from gatepass is imported.
_DB_DIR = tempfile.mkdtemp(prefix="gatepass-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["ENV"] = "test"
os.environ.setdefault("TICKET_SECRET_KEY", "test-ticket-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from gatepass.core.security import get_password_hash
from gatepass.db.session import SessionLocal, engine
from gatepass.models import Account, Base, Event, Ticket, TicketStatus, TicketType

Base.metadata.create_all(bind=engine)

PASSWORD = "testpass"


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_account():
    """Create an account with verified contacts and return its id."""

    def _make(email=None, phone=None, role="user", is_active=True, verified=True):
        db = SessionLocal()
        try:
            account = Account(
                email=email,
                phone=phone,
                full_name=(email or phone or "someone").split("@")[0],
                hashed_password=get_password_hash(PASSWORD),
                role=role,
                is_active=is_active,
                email_verified=verified and email is not None,
                phone_verified=verified and phone is not None,
            )
            db.add(account)
            db.commit()
            return account.id
        finally:
            db.close()

    return _make


@pytest.fixture
def make_ticket():
    """Create a VALID ticket for ``owner_id`` and return its id."""

    def _make(owner_id, price=Decimal("5000"), status=TicketStatus.VALID, event_title="Festival des Masques"):
        db = SessionLocal()
        try:
            event = Event(title=event_title, venue="Ouagadougou")
            db.add(event)
            db.flush()
            ticket_type = TicketType(event_id=event.id, name="Standard", price=price)
            db.add(ticket_type)
            db.flush()
            ticket = Ticket(user_id=owner_id, ticket_type_id=ticket_type.id, price_paid=price, status=status)
            db.add(ticket)
            db.commit()
            return ticket.id
        finally:
            db.close()

    return _make


class RecordingSink:
    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)


class BrokenSink:
    def emit(self, event):
        raise RuntimeError("queue unavailable")


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def broken_sink():
    return BrokenSink()
