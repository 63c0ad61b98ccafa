# noke/tokens/models.py
from enum import Enum
from datetime import datetime, timedelta
from pydantic import Field
from typing import List, Optional

from ..schemas import CamelModel
from ..storage.models import StoredDocument

API_TOKEN_DOC_TYPE = "api_token"


class TokenExpiry(str, Enum):
    """Lifetimes a user can pick when creating a static API token."""
    DAYS_30 = "30d"
    DAYS_90 = "90d"
    ONE_YEAR = "1y"
    NEVER = "never"

    def to_timedelta(self) -> Optional[timedelta]:
        return {
            TokenExpiry.DAYS_30: timedelta(days=30),
            TokenExpiry.DAYS_90: timedelta(days=90),
            TokenExpiry.ONE_YEAR: timedelta(days=365),
            TokenExpiry.NEVER: None,
        }[self]


class ApiToken(StoredDocument):
    """Static API token record. Only the SHA-256 hash of the token is stored."""
    type: str = API_TOKEN_DOC_TYPE
    username: str
    name: str = "API Token"
    token_hash: str
    permissions: List[str] = Field(default_factory=lambda: ["read"])
    created_at: datetime
    last_used: Optional[datetime] = None
    expires_at: Optional[datetime] = None  # None means the token never expires


class CreateTokenRequest(CamelModel):
    username: str = Field(min_length=1)
    name: Optional[str] = None
    expires_in: TokenExpiry = TokenExpiry.NEVER
    permissions: Optional[List[str]] = None


class CreateTokenResponse(CamelModel):
    success: bool = True
    message: str = "Token created. Copy it now, it is not shown again."
    token: str
    token_id: str
    name: str
    expires_at: Optional[datetime] = None


class TokenSummary(CamelModel):
    id: str
    name: str
    created_at: datetime
    last_used: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    permissions: List[str]


class ListTokensResponse(CamelModel):
    success: bool = True
    tokens: List[TokenSummary]


class RevokeTokenResponse(CamelModel):
    success: bool = True
    message: str = "Token revoked."


class ValidateTokenResponse(CamelModel):
    success: bool = True
    username: str
    token_name: str
