# noke/client/credentials.py
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class PluginCredentials(BaseModel):
    """Everything a plugin instance has to remember between runs."""
    plugin_id: Optional[str] = None
    plugin_secret: Optional[str] = None
    rolling_key: Optional[str] = None
    username: Optional[str] = None
    authorized: bool = False
    legacy_token: Optional[str] = None

    @property
    def is_registered(self) -> bool:
        return bool(self.plugin_id and self.plugin_secret)


class AbstractCredentialStore(ABC):
    """Where a plugin client keeps its credentials."""

    @abstractmethod
    async def load(self) -> PluginCredentials:
        """Return stored credentials, or empty ones if nothing is stored."""
        pass

    @abstractmethod
    async def save(self, credentials: PluginCredentials) -> None:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass


class InMemoryCredentialStore(AbstractCredentialStore):
    def __init__(self, credentials: Optional[PluginCredentials] = None):
        self._credentials = credentials or PluginCredentials()

    async def load(self) -> PluginCredentials:
        return self._credentials.model_copy()

    async def save(self, credentials: PluginCredentials) -> None:
        self._credentials = credentials.model_copy()

    async def clear(self) -> None:
        self._credentials = PluginCredentials()


class JsonFileCredentialStore(AbstractCredentialStore):
    """
    Credentials in a JSON file readable only by the current user.

    Writes go to a temporary file that is then renamed over the old one, so
    an interrupted save never leaves a half-written rolling key behind.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    async def load(self) -> PluginCredentials:
        if not self.path.exists():
            return PluginCredentials()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.error(f"Credentials file {self.path} is not valid JSON: {e}")
            raise
        return PluginCredentials.model_validate(data)

    async def save(self, credentials: PluginCredentials) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(credentials.model_dump_json(indent=2), encoding="utf-8")
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, self.path)
        logger.debug(f"Saved plugin credentials to {self.path}.")

    async def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.info(f"Removed plugin credentials file {self.path}.")
