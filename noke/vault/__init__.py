# noke/vault/__init__.py
from .models import VaultEntry
from .service import VaultService

__all__ = ["VaultEntry", "VaultService"]
