from dataclasses import dataclass
from functools import lru_cache
from typing import List
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
import jwt

from gatepass.core.config import settings
from gatepass.core.security import decode_access_token
from gatepass.db.session import get_db
from gatepass.models.account import Account
from gatepass.services.claims import PendingClaimResolver
from gatepass.services.entry_token import EntryTokenCodec
from gatepass.services.gate import GateService
from gatepass.services.inbox import dispatcher
from gatepass.services.transfer_validator import TransferValidator
from gatepass.services.transfers import TransferService
from gatepass.services.verification import ContactVerificationService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

@dataclass(frozen=True)
class Identity:
    account_id: int
    roles: List[str]

def get_current_identity(token: str = Depends(oauth2_scheme)) -> Identity:
    """Return the caller's account id and roles from the session JWT."""
    try:
        payload = decode_access_token(token)
        account_id = int(payload.get("sub"))
    except (jwt.PyJWTError, TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    roles = payload.get("roles") or []
    if not isinstance(roles, list):
        roles = [roles]
    return Identity(account_id=account_id, roles=roles)

def require_roles(*allowed: str):
    def checker(identity: Identity = Depends(get_current_identity)) -> Identity:
        if not any(r in identity.roles for r in allowed):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return identity
    return checker

def get_current_account(db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)) -> Account:
    account = db.get(Account, identity.account_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    if not account.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is blocked")
    return account

@lru_cache
def get_entry_token_codec() -> EntryTokenCodec:
    # Built once per process from configuration; the secret is never mutated afterwards.
    return EntryTokenCodec(
        settings.ticket_secret_key,
        ttl_seconds=settings.entry_token_ttl_seconds,
        leeway_seconds=settings.entry_token_leeway_seconds,
    )

def get_transfer_service(db: Session = Depends(get_db)) -> TransferService:
    validator = TransferValidator(allow_free_tickets=settings.transfer_allow_free_tickets)
    return TransferService(db, validator=validator, events=dispatcher)

def get_claim_resolver(db: Session = Depends(get_db)) -> PendingClaimResolver:
    return PendingClaimResolver(db, events=dispatcher)

def get_verification_service(db: Session = Depends(get_db)) -> ContactVerificationService:
    return ContactVerificationService(db)

def get_gate_service(db: Session = Depends(get_db), codec: EntryTokenCodec = Depends(get_entry_token_codec)) -> GateService:
    return GateService(db, codec)
