from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field

from gatepass.models.ticket import TicketStatus

class TicketOut(BaseModel):
    id: str
    user_id: int
    ticket_type_id: int | None
    status: TicketStatus
    price_paid: Decimal | None
    purchased_at: datetime
    scanned_at: datetime | None = None
    scan_location: str | None = None

    class Config:
        from_attributes = True

class EntryTokenOut(BaseModel):
    ticket_id: str
    token: str
    issued_at: datetime
    expires_at: datetime
    refresh_after_seconds: int

class GateScanBody(BaseModel):
    token: str = Field(..., min_length=1, max_length=4096)
    location: str | None = Field(None, max_length=255)

class GateDecision(BaseModel):
    granted: bool
    ticket_id: str | None = None
    detail: str
