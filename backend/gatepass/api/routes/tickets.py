from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from gatepass.api.deps import get_current_identity, get_entry_token_codec, Identity
from gatepass.core.config import settings
from gatepass.db.session import get_db
from gatepass.models.ticket import Ticket, TicketStatus
from gatepass.schemas.ticket import EntryTokenOut, TicketOut
from gatepass.services.entry_token import EntryTokenCodec

router = APIRouter()

def _owned_ticket(db: Session, ticket_id: str, identity: Identity) -> Ticket:
    t = db.get(Ticket, ticket_id)
    # Someone else's ticket looks the same as a missing one
    if not t or t.user_id != identity.account_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return t

@router.get("/my")
def my_tickets(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=200),
    status_filter: TicketStatus | None = Query(None),
):
    q = db.query(Ticket).filter(Ticket.user_id == identity.account_id)
    if status_filter:
        q = q.filter(Ticket.status == status_filter)
    total = q.count()
    items = q.order_by(Ticket.purchased_at.desc()).offset((page - 1) * page_size).limit(page_size).all()
    return {
        "items": [TicketOut.model_validate(t) for t in items],
        "total": total,
        "page": page,
        "page_size": page_size,
        "pages": (total + page_size - 1)//page_size if total else 1,
    }

@router.get("/{ticket_id}", response_model=TicketOut)
def get_ticket(ticket_id: str, db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)):
    return _owned_ticket(db, ticket_id, identity)

@router.get("/{ticket_id}/entry-token", response_model=EntryTokenOut)
def issue_entry_token(
    ticket_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    codec: EntryTokenCodec = Depends(get_entry_token_codec),
):
    """Fresh scannable token for the current owner.

    Live displays call this again every ``refresh_after_seconds``; downloads embed one.
    """
    t = _owned_ticket(db, ticket_id, identity)
    if t.status != TicketStatus.VALID:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Ticket is {t.status.value}")
    issued = codec.issue(t.id)
    return {
        "ticket_id": t.id,
        "token": issued.token,
        "issued_at": issued.issued_at_dt,
        "expires_at": issued.expires_at_dt,
        "refresh_after_seconds": settings.entry_token_refresh_seconds,
    }
