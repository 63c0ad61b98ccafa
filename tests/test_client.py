"""Plugin-side client driven against the app in-process."""

import asyncio
import os
import stat

import pytest
from httpx import ASGITransport, AsyncClient

from noke.client import (
    AuthorizationTimeoutError,
    InMemoryCredentialStore,
    JsonFileCredentialStore,
    NokeClientError,
    NokePluginClient,
    NotAuthenticatedError,
    PluginCredentials,
    ReauthRequiredError,
)
from noke.main import app
from noke.vault import VaultService

pytestmark = pytest.mark.anyio


async def no_sleep(seconds):
    pass


@pytest.fixture
async def plugin_client(db):
    http_client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    async with NokePluginClient("http://test", InMemoryCredentialStore(), http_client=http_client) as client:
        yield client
    await http_client.aclose()


async def _approve(client, data, username="alice"):
    response = await client.http_client.post("/api/plugin-auth/authorize", json={
        "pluginId": (await client.credential_store.load()).plugin_id,
        "authToken": data["authToken"],
        "username": username,
    })
    assert response.status_code == 200


async def _paired(client, username="alice"):
    data = await client.request_authorization()
    await _approve(client, data, username)
    return await client.wait_for_authorization(poll_interval=0, sleep=no_sleep)


async def test_pairing_stores_rolling_key(plugin_client):
    credentials = await _paired(plugin_client)
    assert credentials.authorized
    assert credentials.username == "alice"
    assert credentials.rolling_key
    assert credentials.is_registered


async def test_requests_rotate_the_stored_key(plugin_client, store, encryptor):
    await VaultService(store, encryptor).add_entry("alice", "GitHub", "alice", "pw", url="https://github.com")
    first_key = (await _paired(plugin_client)).rolling_key

    entries = await plugin_client.get_entries()
    assert [e["name"] for e in entries["entries"]] == ["GitHub"]
    second_key = (await plugin_client.credential_store.load()).rolling_key
    assert second_key != first_key

    found = await plugin_client.search_by_url("https://github.com/login")
    assert found["matchedDomain"] == "github.com"
    generated = await plugin_client.generate_password(length=20)
    assert len(generated["password"]) == 20


async def test_concurrent_requests_are_serialized(plugin_client):
    await _paired(plugin_client)
    results = await asyncio.gather(plugin_client.get_entries(), plugin_client.get_entries())
    assert [r["keyVersion"] for r in sorted(results, key=lambda r: r["keyVersion"])] == [2, 3]


async def test_error_response_still_delivers_next_key(plugin_client):
    await _paired(plugin_client)
    with pytest.raises(NokeClientError) as exc_info:
        await plugin_client.generate_password(uppercase=False, lowercase=False, numbers=False, symbols=False)
    assert exc_info.value.status_code == 400

    # The stored key was replaced, so the next call works
    assert (await plugin_client.get_entries())["success"] is True


async def test_replayed_key_forces_reauth(plugin_client):
    credentials = await _paired(plugin_client)
    spent_key = credentials.rolling_key
    await plugin_client.get_entries()

    stale = await plugin_client.credential_store.load()
    stale.rolling_key = spent_key
    await plugin_client.credential_store.save(stale)

    with pytest.raises(ReauthRequiredError):
        await plugin_client.get_entries()
    assert (await plugin_client.credential_store.load()).rolling_key is None
    with pytest.raises(NotAuthenticatedError):
        await plugin_client.get_entries()


async def test_wait_times_out_without_approval(plugin_client):
    await plugin_client.request_authorization()
    with pytest.raises(AuthorizationTimeoutError):
        await plugin_client.wait_for_authorization(poll_interval=0, timeout=0, sleep=no_sleep)


async def test_wait_reports_key_claimed_elsewhere(plugin_client):
    data = await plugin_client.request_authorization()
    await _approve(plugin_client, data)
    credentials = await plugin_client.credential_store.load()

    # Someone else with the same credentials claims the key first
    claimed = await plugin_client.http_client.post("/api/plugin-auth/check-auth", json={
        "pluginId": credentials.plugin_id, "pluginSecret": credentials.plugin_secret
    })
    assert claimed.json()["rollingKey"]

    with pytest.raises(ReauthRequiredError):
        await plugin_client.wait_for_authorization(poll_interval=0, sleep=no_sleep)


async def test_check_authorization_requires_registration(plugin_client):
    with pytest.raises(NotAuthenticatedError):
        await plugin_client.check_authorization()


async def test_legacy_token_fallback(plugin_client):
    created = await plugin_client.http_client.post("/api/tokens", json={"username": "bob", "name": "legacy"})
    await plugin_client.save_legacy_token(created.json()["token"])

    validated = await plugin_client.validate_legacy_token()
    assert validated["username"] == "bob"

    entries = await plugin_client.get_entries()
    assert entries["entries"] == []
    assert "newRollingKey" not in entries


async def test_logout_forgets_everything(plugin_client):
    await _paired(plugin_client)
    await plugin_client.logout()
    assert not (await plugin_client.credential_store.load()).is_registered
    with pytest.raises(NotAuthenticatedError):
        await plugin_client.get_entries()


async def test_json_file_credential_store(tmp_path):
    path = tmp_path / "nested" / "plugin.json"
    credential_store = JsonFileCredentialStore(path)
    assert await credential_store.load() == PluginCredentials()

    credentials = PluginCredentials(plugin_id="plugin_1", plugin_secret="s", rolling_key="k", authorized=True)
    await credential_store.save(credentials)
    assert await credential_store.load() == credentials
    if os.name == "posix":
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
    assert not path.with_suffix(".json.tmp").exists()

    await credential_store.clear()
    assert not path.exists()
