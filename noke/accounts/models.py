# noke/accounts/models.py
from datetime import datetime
from pydantic import Field
from typing import Optional

from ..schemas import CamelModel
from ..storage.models import StoredDocument

USER_DOC_TYPE = "user"


def profile_id(username: str) -> str:
    return f"{username}_profile"


class UserAccount(StoredDocument):
    """Primary login record. TOTP secrets are stored as Fernet ciphertext."""
    type: str = USER_DOC_TYPE
    username: str
    password_hash: str
    totp_enabled: bool = False
    totp_secret: Optional[str] = None  # active secret, set only while totp_enabled
    totp_secret_pending: Optional[str] = None  # set between setup and enable
    created_at: datetime
    totp_enabled_at: Optional[datetime] = None


class CredentialsRequest(CamelModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class CodeRequest(CredentialsRequest):
    code: str = Field(min_length=1)


class AccountResponse(CamelModel):
    success: bool = True
    username: Optional[str] = None
    mfa_required: Optional[bool] = None
    message: Optional[str] = None


class TotpSetupResponse(CamelModel):
    success: bool = True
    secret: str
    otpauth_url: str
    message: str = "Scan the QR code, then confirm with a code to enable two-factor login."
