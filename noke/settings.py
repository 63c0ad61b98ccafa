# noke/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# This settings.py file is at <project>/noke/settings.py
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
DOTENV_PATH = PROJECT_ROOT / ".env"

if not DOTENV_PATH.exists():
    logger.debug(
        f"SETTINGS.PY: .env file NOT FOUND at {DOTENV_PATH}. "
        "Will rely on OS env vars or defaults."
    )


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    app_name: str = "NoKe Plexus"
    debug_mode: bool = False

    # SQLite document store
    sqlite_db_path: str = "./noke_data.sqlite3"

    # Token and secret generation
    noke_token_bytes_length: int = 32

    # Web client that hosts the plugin authorization page
    web_app_base_url: str = "http://localhost:5173"

    # Security settings
    noke_encryption_key: Optional[str] = Field(
        default=None,
        description="Fernet key for encrypting rolling keys, TOTP secrets and entry passwords. MUST be set for production."
    )
    expose_error_details: bool = Field(
        default=False,
        description="Attach internal exception text to 500 responses. Debugging aid only."
    )

    totp_issuer_name: str = "NoKe"
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])

    model_config = SettingsConfigDict(
        env_file=DOTENV_PATH if DOTENV_PATH.exists() else None,
        extra="ignore",
        env_file_encoding='utf-8'
    )


settings = Settings()

logger.info(
    f"SETTINGS.PY: debug_mode={settings.debug_mode}, sqlite_db_path='{settings.sqlite_db_path}', "
    f"noke_encryption_key={'********' if settings.noke_encryption_key else 'None'}"
)
