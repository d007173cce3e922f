"""Delivery side of transfer notifications: inbox rows plus live pushes."""
from __future__ import annotations

from loguru import logger
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from gatepass.core.config import settings
from gatepass.db.session import SessionLocal
from gatepass.models.event import Event, TicketType
from gatepass.models.notification import Notification
from gatepass.models.ticket import Ticket
from gatepass.services.notification_ws import manager as ws_manager
from gatepass.services.notifications import (
    NotificationDispatcher,
    OutboundNotification,
    TransferEvent,
    fan_out,
)


def _event_title(db: Session, ticket_id: str) -> str | None:
    row = (
        db.query(Event.title)
        .join(TicketType, TicketType.event_id == Event.id)
        .join(Ticket, Ticket.ticket_type_id == TicketType.id)
        .filter(Ticket.id == ticket_id)
        .first()
    )
    return row[0] if row else None


def store_notifications(db: Session, event: TransferEvent) -> list[tuple[Notification, OutboundNotification]]:
    """Write inbox rows for account recipients; contact-only recipients are only logged."""
    stored = []
    for item in fan_out(event, _event_title(db, event.ticket_id)):
        if item.account_id is None:
            # E-mail/SMS delivery is handled outside this service.
            logger.info(f"External delivery queued for {item.contact}: {item.title}")
            continue
        row = Notification(user_id=item.account_id, type=item.type, title=item.title, message=item.message)
        db.add(row)
        stored.append((row, item))
    db.commit()
    return stored


def _persist(event: TransferEvent) -> list[tuple[int, dict]]:
    """Store inbox rows in a fresh session and return the pushes to send."""
    db = SessionLocal()
    try:
        stored = store_notifications(db, event)
        pushes = [
            (row.user_id, {
                "type": "notification",
                "data": {
                    "id": row.id,
                    "type": row.type,
                    "title": row.title,
                    "message": row.message,
                    "created_at": row.created_at.isoformat() if row.created_at else None,
                    "read": False,
                },
            })
            for row, _item in stored
        ]
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
    return pushes


async def deliver_transfer_event(event: TransferEvent) -> None:
    # Blocking store work stays off the event loop
    pushes = await run_in_threadpool(_persist, event)
    for account_id, payload in pushes:
        await ws_manager.send_to_account(account_id, payload)


dispatcher = NotificationDispatcher(
    deliver_transfer_event,
    max_attempts=settings.notification_max_attempts,
    retry_delay=settings.notification_retry_delay_seconds,
)
