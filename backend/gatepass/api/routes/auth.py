from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from loguru import logger
from sqlalchemy.orm import Session

from gatepass.api.deps import get_claim_resolver, get_current_account, get_verification_service
from gatepass.core.config import settings
from gatepass.core.exceptions import InvalidRecipientError
from gatepass.core.security import create_access_token, get_password_hash, verify_password
from gatepass.db.session import get_db
from gatepass.models.account import Account
from gatepass.schemas.auth import (
    RegisterOut,
    Token,
    UserLogin,
    UserRegister,
    VerificationConfirm,
    VerificationRequest,
    VerificationResult,
    VerificationSent,
)
from gatepass.services.claims import PendingClaimResolver
from gatepass.services.contact import normalize_email, normalize_phone
from gatepass.services.verification import ContactVerificationService

router = APIRouter()

def _find_account(db: Session, login: str) -> Account | None:
    login = login.strip()
    if "@" in login:
        return db.query(Account).filter(Account.email == login.lower()).first()
    try:
        phone = normalize_phone(login)
    except InvalidRecipientError:
        return None
    return db.query(Account).filter(Account.phone == phone).first()

def _issue_token(account: Account | None, password: str) -> dict:
    if not account:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if not account.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is blocked")
    if not verify_password(password, account.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect credentials")
    return {"access_token": create_access_token(account.id, roles=[account.role]), "token_type": "bearer"}

@router.post("/login", response_model=Token)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """Form login (username = e-mail or phone). The account must already exist."""
    return _issue_token(_find_account(db, form_data.username), form_data.password)

@router.post("/login-json", response_model=Token)
def login_json(payload: UserLogin, db: Session = Depends(get_db)):
    """JSON login, same behaviour as /login."""
    return _issue_token(_find_account(db, payload.login), payload.password)

@router.post("/register", response_model=RegisterOut, status_code=201)
def register(payload: UserRegister, db: Session = Depends(get_db)):
    """Create an account. Contacts start unverified; see /auth/verify/request."""
    try:
        email = normalize_email(payload.email) if payload.email else None
        phone = normalize_phone(payload.phone) if payload.phone else None
    except InvalidRecipientError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message.replace("recipient ", ""))
    if email and db.query(Account).filter(Account.email == email).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")
    if phone and db.query(Account).filter(Account.phone == phone).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Phone already registered")
    role = "user"
    if email and email in settings.admin_emails:
        role = "admin"
    elif email and email in settings.scanner_emails:
        role = "scanner"
    account = Account(
        email=email,
        phone=phone,
        full_name=payload.full_name,
        hashed_password=get_password_hash(payload.password),
        role=role,
        is_active=True,
        email_verified=False,
        phone_verified=False,
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    logger.info(f"Account {account.id} registered")
    return account

@router.post("/verify/request", response_model=VerificationSent, status_code=202)
def request_verification(
    payload: VerificationRequest,
    account: Account = Depends(get_current_account),
    verifier: ContactVerificationService = Depends(get_verification_service),
):
    """Send a one-time code to the account's e-mail or phone."""
    issued = verifier.request_code(account, payload.channel)
    return {"channel": issued.channel, "expires_at": issued.expires_at, "detail": "Verification code sent"}

@router.post("/verify/confirm", response_model=VerificationResult)
def confirm_verification(
    payload: VerificationConfirm,
    account: Account = Depends(get_current_account),
    verifier: ContactVerificationService = Depends(get_verification_service),
    resolver: PendingClaimResolver = Depends(get_claim_resolver),
):
    """Check the code, mark the contact verified and hand over tickets waiting for it."""
    verifier.confirm(account, payload.channel, payload.code)
    outcome = resolver.resolve_for_new_account(account.id, account.verified_email, account.verified_phone)
    return {"channel": payload.channel, "verified": True, "claimed_transfers": outcome.claimed}
