from gatepass.models.base import Base
from gatepass.models.account import Account
from gatepass.models.event import Event, TicketType
from gatepass.models.ticket import Ticket, TicketStatus
from gatepass.models.transfer import TicketTransfer, TransferStatus
from gatepass.models.notification import Notification
from gatepass.models.verification import ContactVerification

__all__ = [
    "Base",
    "Account",
    "Event",
    "TicketType",
    "Ticket",
    "TicketStatus",
    "TicketTransfer",
    "TransferStatus",
    "Notification",
    "ContactVerification",
]
