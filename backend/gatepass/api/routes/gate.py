from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from gatepass.api.deps import Identity, get_gate_service, require_roles
from gatepass.core.exceptions import EntryDeniedError
from gatepass.schemas.ticket import GateDecision, GateScanBody
from gatepass.services.gate import GateService

router = APIRouter()

# Scanning devices only ever learn "granted" or "denied"; reasons stay in the server log.
DENIED = {"granted": False, "ticket_id": None, "detail": "Entry denied"}

@router.post("/check", response_model=GateDecision)
def check_entry(
    body: GateScanBody,
    _identity: Identity = Depends(require_roles("scanner", "admin")),
    gate: GateService = Depends(get_gate_service),
):
    """Would this token be admitted now? Does not consume the ticket."""
    try:
        ticket = gate.check(body.token, body.location)
    except EntryDeniedError:
        return JSONResponse(status_code=403, content=DENIED)
    return {"granted": True, "ticket_id": ticket.id, "detail": "Ticket is valid"}

@router.post("/scan", response_model=GateDecision)
def scan_entry(
    body: GateScanBody,
    identity: Identity = Depends(require_roles("scanner", "admin")),
    gate: GateService = Depends(get_gate_service),
):
    """Admit the holder and mark the ticket USED."""
    try:
        ticket = gate.admit(body.token, body.location, identity.account_id)
    except EntryDeniedError:
        return JSONResponse(status_code=403, content=DENIED)
    return {"granted": True, "ticket_id": ticket.id, "detail": "Entry granted"}
