# noke/client/api_client.py
import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ..plugins.constants import (
    API_KEY_HEADER,
    AUTH_REQUEST_TTL_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    PLUGIN_ID_HEADER,
)
from .credentials import AbstractCredentialStore, PluginCredentials
from .errors import (
    AuthorizationTimeoutError,
    NokeClientError,
    NotAuthenticatedError,
    ReauthRequiredError,
)

logger = logging.getLogger(__name__)


class NokePluginClient:
    """
    Async client for the plugin side of the NoKe API.

    Pairs the instance with a user account and then authenticates every data
    request with the current rolling key, storing the replacement key the
    server returns. A static API token can be used instead while no rolling
    key is held.
    """

    def __init__(
        self,
        base_url: str,
        credential_store: AbstractCredentialStore,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.credential_store = credential_store
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
        # One key is valid at a time, so rolling-key requests must not overlap
        self._rolling_key_lock = asyncio.Lock()

    async def __aenter__(self) -> "NokePluginClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self.http_client.aclose()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except json.JSONDecodeError:
            return {"message": response.text}
        return data if isinstance(data, dict) else {"data": data}

    def _raise_for_error(self, response: httpx.Response, data: Dict[str, Any]) -> None:
        if response.status_code >= 400:
            message = data.get("message") or f"HTTP {response.status_code}"
            raise NokeClientError(message, status_code=response.status_code, response_data=data)

    async def register(self) -> PluginCredentials:
        """Register a new instance, replacing any previous registration."""
        response = await self.http_client.post(self._url("/api/plugin-auth/register"))
        data = self._json(response)
        self._raise_for_error(response, data)
        credentials = await self.credential_store.load()
        credentials.plugin_id = data["pluginId"]
        credentials.plugin_secret = data["pluginSecret"]
        credentials.rolling_key = None
        credentials.authorized = False
        credentials.username = None
        await self.credential_store.save(credentials)
        logger.info(f"Registered plugin instance '{credentials.plugin_id}'.")
        return credentials

    async def request_authorization(self) -> Dict[str, Any]:
        """
        Ask the server for an authorization URL, registering first if needed.

        Returns the server response; the user has to open ``authUrl`` in the
        web client within ``expiresIn`` seconds.
        """
        credentials = await self.credential_store.load()
        if not credentials.is_registered:
            credentials = await self.register()
        response = await self.http_client.post(
            self._url("/api/plugin-auth/request-auth"),
            json={"pluginId": credentials.plugin_id, "pluginSecret": credentials.plugin_secret},
        )
        data = self._json(response)
        self._raise_for_error(response, data)
        logger.info(f"Authorization requested; open {data['authUrl']} to approve.")
        return data

    async def check_authorization(self) -> Dict[str, Any]:
        """Poll once. Stores the rolling key when the server hands it out."""
        credentials = await self.credential_store.load()
        if not credentials.is_registered:
            raise NotAuthenticatedError("Plugin is not registered.")
        response = await self.http_client.post(
            self._url("/api/plugin-auth/check-auth"),
            json={"pluginId": credentials.plugin_id, "pluginSecret": credentials.plugin_secret},
        )
        data = self._json(response)
        self._raise_for_error(response, data)

        if data.get("requireReauth"):
            credentials.rolling_key = None
            credentials.authorized = False
            await self.credential_store.save(credentials)
        elif data.get("authorized") and data.get("rollingKey"):
            credentials.rolling_key = data["rollingKey"]
            credentials.username = data.get("username")
            credentials.authorized = True
            await self.credential_store.save(credentials)
            logger.info(f"Plugin authorized for user '{credentials.username}'.")
        return data

    async def wait_for_authorization(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        timeout: float = AUTH_REQUEST_TTL_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> PluginCredentials:
        """
        Poll check-auth until the rolling key arrives or ``timeout`` passes.

        Raises:
            ReauthRequiredError: The key was already handed out to another poll.
            AuthorizationTimeoutError: Nobody approved the request in time.
        """
        deadline = time.monotonic() + timeout
        while True:
            data = await self.check_authorization()
            if data.get("requireReauth"):
                raise ReauthRequiredError(
                    data.get("message") or "Authorization must be requested again.", response_data=data
                )
            if data.get("authorized") and data.get("rollingKey"):
                return await self.credential_store.load()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise AuthorizationTimeoutError("Authorization was not approved in time.")
            await sleep(min(poll_interval, remaining))

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Authenticated data-plane request.

        Uses the rolling key when one is held and falls back to the legacy
        static token otherwise.
        """
        credentials = await self.credential_store.load()
        if credentials.plugin_id and credentials.rolling_key:
            async with self._rolling_key_lock:
                return await self._request_with_rolling_key(method, path, params, json_body)
        if credentials.legacy_token:
            response = await self.http_client.request(
                method, self._url(path), params=params, json=json_body,
                headers={API_KEY_HEADER: credentials.legacy_token},
            )
            data = self._json(response)
            self._raise_for_error(response, data)
            return data
        raise NotAuthenticatedError("Not authenticated. Authorize the plugin or set an API token.")

    async def _request_with_rolling_key(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]],
        json_body: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        # Reload under the lock so the key used is the one the previous call stored
        credentials = await self.credential_store.load()
        if not credentials.rolling_key:
            raise ReauthRequiredError("Rolling key was discarded. Authorize the plugin again.")
        response = await self.http_client.request(
            method, self._url(path), params=params, json=json_body,
            headers={PLUGIN_ID_HEADER: credentials.plugin_id, API_KEY_HEADER: credentials.rolling_key},
        )
        data = self._json(response)

        if data.get("requireReauth"):
            credentials.rolling_key = None
            credentials.authorized = False
            await self.credential_store.save(credentials)
            logger.warning("Server requires re-authorization; rolling key discarded.")
            raise ReauthRequiredError(
                data.get("message") or "Authorization must be requested again.",
                status_code=response.status_code,
                response_data=data,
            )
        if data.get("newRollingKey"):
            credentials.rolling_key = data["newRollingKey"]
            await self.credential_store.save(credentials)

        self._raise_for_error(response, data)
        return data

    async def get_entries(self) -> Dict[str, Any]:
        return await self.request("GET", "/api/plugin/entries")

    async def search_by_url(self, url: str) -> Dict[str, Any]:
        return await self.request("GET", "/api/plugin/search", params={"url": url})

    async def generate_password(self, **options: Any) -> Dict[str, Any]:
        return await self.request("POST", "/api/plugin/generate", json_body=options or None)

    async def save_legacy_token(self, token: str) -> None:
        credentials = await self.credential_store.load()
        credentials.legacy_token = token
        await self.credential_store.save(credentials)

    async def validate_legacy_token(self) -> Dict[str, Any]:
        credentials = await self.credential_store.load()
        if not credentials.legacy_token:
            raise NotAuthenticatedError("No API token stored.")
        response = await self.http_client.post(
            self._url("/api/validate-token"), headers={API_KEY_HEADER: credentials.legacy_token}
        )
        data = self._json(response)
        self._raise_for_error(response, data)
        return data

    async def logout(self) -> None:
        """Forget all local credentials. Revoking on the server is done from the web client."""
        await self.credential_store.clear()
        logger.info("Plugin credentials cleared.")
