from fastapi import APIRouter, Depends

from gatepass.api.deps import get_claim_resolver, get_current_account, get_transfer_service
from gatepass.models.account import Account
from gatepass.schemas.transfer import ClaimResult, TransferCreate, TransferOut, TransferSubmitted
from gatepass.services.claims import PendingClaimResolver
from gatepass.services.transfers import TransferService

router = APIRouter()

@router.post("/", response_model=TransferSubmitted, status_code=201)
def submit_transfer(
    payload: TransferCreate,
    account: Account = Depends(get_current_account),
    service: TransferService = Depends(get_transfer_service),
):
    """Send a ticket to someone identified by e-mail or phone.

    Registered recipients get the ticket immediately (``instant``); anyone else
    gets a pending transfer that completes when they sign up with that contact.
    """
    result = service.submit(
        payload.ticket_id,
        account.id,
        email=payload.recipient_email,
        phone=payload.recipient_phone,
        name=payload.recipient_name,
        message=payload.message,
    )
    message = "Ticket transferred" if result.instant else "Transfer pending: the recipient gets the ticket when they sign up"
    return {"transfer_id": result.transfer_id, "instant": result.instant, "status": result.status, "message": message}

@router.post("/{transfer_id}/cancel", response_model=TransferOut)
def cancel_transfer(
    transfer_id: str,
    account: Account = Depends(get_current_account),
    service: TransferService = Depends(get_transfer_service),
):
    return service.cancel(transfer_id, account.id)

@router.get("/pending", response_model=list[TransferOut])
def pending_for_me(
    account: Account = Depends(get_current_account),
    resolver: PendingClaimResolver = Depends(get_claim_resolver),
):
    """Transfers waiting for the caller's verified e-mail/phone (read only)."""
    return resolver.list_pending_for(account.verified_email, account.verified_phone)

@router.post("/claim", response_model=ClaimResult)
def claim_pending(
    account: Account = Depends(get_current_account),
    resolver: PendingClaimResolver = Depends(get_claim_resolver),
):
    outcome = resolver.resolve_for_new_account(account.id, account.verified_email, account.verified_phone)
    n = len(outcome.claimed)
    return {
        "claimed": outcome.claimed,
        "skipped": [{"transfer_id": tid, "reason": reason} for tid, reason in outcome.skipped],
        "message": f"{n} ticket(s) claimed" if n else "No pending transfers found",
    }

@router.get("/history", response_model=list[TransferOut])
def transfer_history(
    account: Account = Depends(get_current_account),
    service: TransferService = Depends(get_transfer_service),
):
    """Transfers sent or received by the caller, newest first."""
    return service.history(account.id)
