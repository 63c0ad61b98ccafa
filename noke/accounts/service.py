# noke/accounts/service.py
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import bcrypt
import pyotp

from ..errors import (
    ConflictError,
    InvalidRequestError,
    UnauthenticatedError,
    internal_errors,
)
from ..settings import settings
from ..storage import AbstractDocumentStore, DocumentConflictError, PreconditionFailedError
from ..utils import FernetEncryptor
from .models import AccountResponse, TotpSetupResponse, UserAccount, profile_id

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes and newer releases reject longer input
MAX_PASSWORD_BYTES = 72


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_username(username: str) -> None:
    if not username or username.startswith("_"):
        raise InvalidRequestError("Usernames must be non-empty and may not start with '_'.")


class AccountService:
    """
    Primary login with an optional TOTP second factor.

    TOTP state moves through three stages: disabled (no secret), pending
    (``setup_totp`` stored a secret awaiting confirmation) and enabled
    (``enable_totp`` confirmed a code and promoted the secret).
    """

    def __init__(
        self,
        store: AbstractDocumentStore,
        encryptor: FernetEncryptor,
        clock: Callable[[], datetime] = utcnow,
        issuer_name: Optional[str] = None,
    ):
        self.store = store
        self.encryptor = encryptor
        self.clock = clock
        self.issuer_name = issuer_name or settings.totp_issuer_name

    async def _load(self, username: str) -> Optional[UserAccount]:
        doc = await self.store.get(profile_id(username), username)
        return UserAccount.from_document(doc) if doc else None

    async def _authenticate(self, username: str, password: str) -> UserAccount:
        with internal_errors("Account lookup"):
            account = await self._load(username)
        if account is None:
            logger.warning(f"Login attempt for unknown user '{username}'.")
            raise UnauthenticatedError("Invalid username or password.")
        password_bytes = password.encode("utf-8")
        if len(password_bytes) > MAX_PASSWORD_BYTES or not bcrypt.checkpw(
            password_bytes, account.password_hash.encode("utf-8")
        ):
            logger.warning(f"Wrong password for user '{username}'.")
            raise UnauthenticatedError("Invalid username or password.")
        return account

    async def _save(self, account: UserAccount) -> None:
        try:
            await self.store.replace_if_match(account.to_document(), account.etag)
        except PreconditionFailedError:
            logger.warning(f"Account '{account.username}' changed concurrently.")
            raise ConflictError("Account was modified concurrently. Try again.")

    async def register_user(self, username: str, password: str) -> AccountResponse:
        _check_username(username)
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise InvalidRequestError(f"Passwords are limited to {MAX_PASSWORD_BYTES} bytes.")
        password_hash = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")
        account = UserAccount(
            id=profile_id(username),
            partition_key=username,
            username=username,
            password_hash=password_hash,
            created_at=self.clock(),
        )
        with internal_errors("Account registration"):
            try:
                await self.store.create(account.to_document())
            except DocumentConflictError:
                logger.info(f"Registration rejected, username '{username}' is taken.")
                raise ConflictError("Username already taken.")
        logger.info(f"Registered user '{username}'.")
        return AccountResponse(username=username, message="Account created.")

    async def login(self, username: str, password: str) -> AccountResponse:
        """Password check; with TOTP enabled this only reports that a code is required."""
        account = await self._authenticate(username, password)
        if account.totp_enabled:
            logger.info(f"Password accepted for '{username}', awaiting TOTP code.")
            return AccountResponse(success=False, mfa_required=True, message="Two-factor code required.")
        logger.info(f"User '{username}' logged in.")
        return AccountResponse(username=username)

    async def verify_mfa(self, username: str, password: str, code: str) -> AccountResponse:
        """Second login step. The password is checked again so a bare code never suffices."""
        account = await self._authenticate(username, password)
        if not account.totp_enabled or not account.totp_secret:
            raise InvalidRequestError("Two-factor login is not enabled for this account.")
        with internal_errors("TOTP verification"):
            secret = self.encryptor.decrypt(account.totp_secret)
        if not pyotp.TOTP(secret).verify(code.strip(), valid_window=1):
            logger.warning(f"Invalid TOTP code for user '{username}'.")
            raise UnauthenticatedError("Invalid two-factor code.")
        logger.info(f"User '{username}' logged in with TOTP.")
        return AccountResponse(username=username)

    async def setup_totp(self, username: str, password: str) -> TotpSetupResponse:
        """Store a new pending secret. An already active secret stays in force until enable."""
        account = await self._authenticate(username, password)
        secret = pyotp.random_base32()
        with internal_errors("TOTP setup"):
            account.totp_secret_pending = self.encryptor.encrypt(secret)
            await self._save(account)
        logger.info(f"TOTP setup started for user '{username}'.")
        otpauth_url = pyotp.TOTP(secret).provisioning_uri(name=username, issuer_name=self.issuer_name)
        return TotpSetupResponse(secret=secret, otpauth_url=otpauth_url)

    async def enable_totp(self, username: str, password: str, code: str) -> AccountResponse:
        account = await self._authenticate(username, password)
        if not account.totp_secret_pending:
            raise InvalidRequestError("No pending TOTP setup. Start setup first.")
        with internal_errors("TOTP enable"):
            secret = self.encryptor.decrypt(account.totp_secret_pending)
            if not pyotp.TOTP(secret).verify(code.strip(), valid_window=1):
                logger.warning(f"TOTP enable for '{username}' rejected: code does not match.")
                raise UnauthenticatedError("Invalid two-factor code.")
            account.totp_secret = account.totp_secret_pending
            account.totp_secret_pending = None
            account.totp_enabled = True
            account.totp_enabled_at = self.clock()
            await self._save(account)
        logger.info(f"TOTP enabled for user '{username}'.")
        return AccountResponse(username=username, message="Two-factor login enabled.")

    async def disable_totp(self, username: str, password: str) -> AccountResponse:
        account = await self._authenticate(username, password)
        with internal_errors("TOTP disable"):
            account.totp_enabled = False
            account.totp_secret = None
            account.totp_secret_pending = None
            account.totp_enabled_at = None
            await self._save(account)
        logger.info(f"TOTP disabled for user '{username}'.")
        return AccountResponse(username=username, message="Two-factor login disabled.")
