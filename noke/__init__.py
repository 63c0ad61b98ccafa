# noke/__init__.py
"""
NoKe Plexus: password-manager backend with rolling-key plugin pairing,
static API tokens and TOTP two-factor login.
"""

__version__ = "0.1.0"
