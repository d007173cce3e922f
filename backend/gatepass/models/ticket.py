import enum
import uuid
from sqlalchemy import String, ForeignKey, DateTime, Numeric, Enum
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from decimal import Decimal

from gatepass.models.base import Base, utcnow

class TicketStatus(str, enum.Enum):
    VALID = "VALID"
    USED = "USED"  # terminal, set by the gate
    VOID = "VOID"  # terminal

class Ticket(Base):
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), index=True)
    ticket_type_id: Mapped[int | None] = mapped_column(ForeignKey("ticket_types.id"), nullable=True)
    status: Mapped[TicketStatus] = mapped_column(
        Enum(TicketStatus, native_enum=False, length=16), default=TicketStatus.VALID
    )
    price_paid: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    purchased_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    scanned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scan_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    scanned_by: Mapped[int | None] = mapped_column(ForeignKey("accounts.id"), nullable=True)

    @property
    def is_free(self) -> bool:
        return self.price_paid is not None and self.price_paid == 0
