# noke/accounts/__init__.py
from .models import UserAccount
from .service import AccountService

__all__ = ["UserAccount", "AccountService"]
