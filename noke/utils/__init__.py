# noke/utils/__init__.py

"""
Utility module initialization file.

Exposes the field-level encryption helpers shared by the plugin, account
and vault services.
"""

from .security import FernetEncryptor, CipherError, generate_fernet_key, is_encrypted

__all__ = ["FernetEncryptor", "CipherError", "generate_fernet_key", "is_encrypted"]
