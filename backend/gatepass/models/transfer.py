import enum
import uuid
from sqlalchemy import String, ForeignKey, DateTime, Enum, Index, CheckConstraint, text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime

from gatepass.models.base import Base, utcnow

class TransferStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

ACTIVE_TRANSFER_STATUSES = (TransferStatus.PENDING, TransferStatus.COMPLETED)

# Shared by the model and the migration so both backends get the same predicate.
ACTIVE_TRANSFER_PREDICATE = "status IN ('PENDING', 'COMPLETED')"

class TicketTransfer(Base):
    __tablename__ = "ticket_transfers"
    __table_args__ = (
        # At most one PENDING/COMPLETED transfer per ticket, enforced by the store.
        Index(
            "uq_ticket_transfers_active_ticket",
            "ticket_id",
            unique=True,
            postgresql_where=text(ACTIVE_TRANSFER_PREDICATE),
            sqlite_where=text(ACTIVE_TRANSFER_PREDICATE),
        ),
        CheckConstraint(
            "status <> 'PENDING' OR (recipient_id IS NULL AND "
            "(recipient_email IS NOT NULL OR recipient_phone IS NOT NULL))",
            name="ck_ticket_transfers_pending_unresolved",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    ticket_id: Mapped[str] = mapped_column(ForeignKey("tickets.id"), index=True)
    sender_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), index=True)
    recipient_id: Mapped[int | None] = mapped_column(ForeignKey("accounts.id"), index=True, nullable=True)
    recipient_email: Mapped[str | None] = mapped_column(String(255), index=True, nullable=True)
    recipient_phone: Mapped[str | None] = mapped_column(String(32), index=True, nullable=True)
    recipient_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    message: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[TransferStatus] = mapped_column(Enum(TransferStatus, native_enum=False, length=16))
    status_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_TRANSFER_STATUSES
