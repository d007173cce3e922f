from datetime import datetime
from pydantic import BaseModel, Field

from gatepass.models.transfer import TransferStatus

class TransferCreate(BaseModel):
    ticket_id: str = Field(..., min_length=1, max_length=36)
    recipient_email: str | None = Field(None, max_length=255)
    recipient_phone: str | None = Field(None, max_length=32)
    recipient_name: str | None = Field(None, max_length=255)
    message: str | None = Field(None, max_length=500)

class TransferSubmitted(BaseModel):
    transfer_id: str
    instant: bool
    status: TransferStatus
    message: str

class TransferOut(BaseModel):
    id: str
    ticket_id: str
    sender_id: int
    recipient_id: int | None
    recipient_email: str | None
    recipient_phone: str | None
    recipient_name: str | None
    message: str | None
    status: TransferStatus
    status_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class ClaimSkip(BaseModel):
    transfer_id: str
    reason: str

class ClaimResult(BaseModel):
    claimed: list[str]
    skipped: list[ClaimSkip] = []
    message: str

class RejectBody(BaseModel):
    reason: str | None = Field(None, max_length=255)
