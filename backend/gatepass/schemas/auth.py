from datetime import datetime
from typing import Literal
from pydantic import BaseModel, EmailStr, Field, model_validator

class Token(BaseModel):
    access_token: str
    token_type: str

class UserRegister(BaseModel):
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=32)
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., min_length=1, max_length=255)

    @model_validator(mode="after")
    def _needs_contact(self):
        if not self.email and not self.phone:
            raise ValueError("email or phone is required")
        return self

class UserOut(BaseModel):
    id: int
    email: str | None
    phone: str | None
    full_name: str
    role: str
    is_active: bool

    class Config:
        from_attributes = True

class RegisterOut(UserOut):
    # Contacts stay unverified until confirmed through /auth/verify
    email_verified: bool
    phone_verified: bool

class UserLogin(BaseModel):
    # e-mail address or phone number
    login: str
    password: str

class VerificationRequest(BaseModel):
    channel: Literal["email", "phone"]

class VerificationSent(BaseModel):
    channel: str
    expires_at: datetime
    detail: str

class VerificationConfirm(BaseModel):
    channel: Literal["email", "phone"]
    code: str = Field(..., min_length=4, max_length=12)

class VerificationResult(BaseModel):
    channel: str
    verified: bool
    claimed_transfers: list[str] = []
