# noke/tokens/token_manager.py
import secrets
import hashlib
from abc import ABC, abstractmethod
from typing import Optional, Tuple
from uuid import uuid4

from ..settings import settings


class TokenManagerProtocol(ABC):
    """Protocol defining the interface for opaque token and identifier generation."""

    @abstractmethod
    def generate_token_and_hash(self) -> Tuple[str, str]:
        """Generate a new token and return both the raw token and its hash."""
        pass

    @abstractmethod
    def hash_token(self, token: str) -> str:
        """Create a one-way hash of the provided token."""
        pass

    @abstractmethod
    def generate_plugin_id(self) -> str:
        """Allocate a new globally unique plugin instance identifier."""
        pass

    @abstractmethod
    def generate_api_token_id(self) -> str:
        """Allocate a new identifier for a static API token record."""
        pass

    def token_matches(self, token: Optional[str], stored_hash: Optional[str]) -> bool:
        """Constant-time comparison of a presented token against a stored hash."""
        if not token or not stored_hash:
            return False
        return secrets.compare_digest(self.hash_token(token), stored_hash)


class DefaultTokenManager(TokenManagerProtocol):
    """Default implementation using secure random generation and SHA-256 hashing."""

    def generate_token_and_hash(self) -> Tuple[str, str]:
        """
        Generate a cryptographically secure token and its corresponding hash.

        Used for plugin secrets, rolling keys, auth-request tokens and static
        API tokens alike.

        Returns:
            Tuple containing the raw token (for the caller) and its hash (for storage).
        """
        token = secrets.token_urlsafe(settings.noke_token_bytes_length)
        token_hash = self.hash_token(token)
        return token, token_hash

    def hash_token(self, token: str) -> str:
        """
        Create SHA-256 hash of token for storage.

        Raw tokens are never stored; only their hashes are persisted.
        """
        return hashlib.sha256(token.encode('utf-8')).hexdigest()

    def generate_plugin_id(self) -> str:
        return f"plugin_{uuid4()}"

    def generate_api_token_id(self) -> str:
        return f"token_{uuid4()}"
