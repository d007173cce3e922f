from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from gatepass.api.deps import Identity, get_transfer_service, require_roles
from gatepass.db.session import get_db
from gatepass.models.transfer import TicketTransfer, TransferStatus
from gatepass.schemas.transfer import RejectBody, TransferOut
from gatepass.services.transfers import TransferService

router = APIRouter(dependencies=[Depends(require_roles("admin"))])


@router.get("/transfers", response_model=dict)
def list_transfers(
    status_filter: TransferStatus | None = Query(None, alias="status"),
    ticket_id: str | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Paginated transfer records for review, newest first."""
    q = db.query(TicketTransfer)
    if status_filter is not None:
        q = q.filter(TicketTransfer.status == status_filter)
    if ticket_id:
        q = q.filter(TicketTransfer.ticket_id == ticket_id)
    total = q.count()
    items = q.order_by(TicketTransfer.created_at.desc()).offset((page - 1) * page_size).limit(page_size).all()
    return {
        "items": [TransferOut.model_validate(t) for t in items],
        "total": total,
        "page": page,
        "page_size": page_size,
        "pages": (total + page_size - 1) // page_size if total else 1,
    }


@router.post("/transfers/{transfer_id}/reject", response_model=TransferOut)
def reject_transfer(
    transfer_id: str,
    body: RejectBody,
    identity: Identity = Depends(require_roles("admin")),
    service: TransferService = Depends(get_transfer_service),
):
    return service.reject(transfer_id, identity.account_id, body.reason)
