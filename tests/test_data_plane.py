"""Plugin data endpoints: entries, URL search and password generation."""

import pytest

from noke.errors import InvalidRequestError
from noke.plugins import PluginAuthService
from noke.tokens import ApiTokenService
from noke.vault import VaultService
from noke.vault.models import SYMBOL_CHARACTERS
from noke.vault.service import domains_match, extract_domain

pytestmark = pytest.mark.anyio


@pytest.fixture
async def vault(store, encryptor):
    service = VaultService(store, encryptor)
    await service.add_entry("alice", "GitHub", "alice-gh", "gh-pass", url="https://github.com/login")
    await service.add_entry("alice", "Mail", "alice", "mail-pass", url="https://www.mail.example.org")
    await service.add_entry("bob", "GitHub", "bob-gh", "bob-pass", url="https://github.com")
    return service


@pytest.fixture
async def plugin(store, encryptor, vault):
    """A paired plugin for alice; ``plugin.headers()`` yields the current rolling-key headers."""
    service = PluginAuthService(store, encryptor=encryptor)
    registered = await service.register()
    requested = await service.request_auth(registered.plugin_id, registered.plugin_secret)
    await service.authorize(registered.plugin_id, requested.auth_token, "alice")
    result = await service.check_auth(registered.plugin_id, registered.plugin_secret)

    class PairedPlugin:
        plugin_id = registered.plugin_id
        key = result.rolling_key

        def headers(self):
            return {"x-plugin-id": self.plugin_id, "x-api-key": self.key}

        def update(self, response):
            self.key = response.json()["newRollingKey"]

    return PairedPlugin()


def test_extract_domain():
    assert extract_domain("https://www.GitHub.com/login?x=1") == "github.com"
    assert extract_domain("github.com/path") == "github.com"
    assert extract_domain("http://sub.example.org:8080") == "sub.example.org"


def test_domains_match_both_directions():
    assert domains_match("https://github.com", "gist.github.com")
    assert domains_match("https://accounts.example.org", "example.org")
    assert not domains_match("https://gitlab.com", "github.com")
    assert not domains_match("", "github.com")


async def test_entries_are_scoped_and_decrypted(client, plugin, store):
    response = await client.get("/api/plugin/entries", headers=plugin.headers())
    assert response.status_code == 200
    body = response.json()
    assert sorted(e["name"] for e in body["entries"]) == ["GitHub", "Mail"]
    passwords = {e["name"]: e["password"] for e in body["entries"]}
    assert passwords == {"GitHub": "gh-pass", "Mail": "mail-pass"}
    assert body["newRollingKey"]

    stored = await store.query_partition("entry", "alice")
    assert all(doc["password"].startswith("fernet:") for doc in stored)


async def test_entries_via_post(client, plugin):
    response = await client.post("/api/plugin/entries", headers=plugin.headers())
    assert response.status_code == 200
    assert len(response.json()["entries"]) == 2


async def test_search_by_query_and_body(client, plugin):
    by_query = await client.get(
        "/api/plugin/search", params={"url": "https://github.com/settings"}, headers=plugin.headers()
    )
    assert by_query.status_code == 200
    assert by_query.json()["matchedDomain"] == "github.com"
    assert [e["loginUsername"] for e in by_query.json()["entries"]] == ["alice-gh"]
    plugin.update(by_query)

    by_body = await client.post(
        "/api/plugin/search", json={"url": "mail.example.org"}, headers=plugin.headers()
    )
    assert by_body.status_code == 200
    assert [e["name"] for e in by_body.json()["entries"]] == ["Mail"]


async def test_search_without_url_still_rotates_key(client, plugin):
    response = await client.get("/api/plugin/search", headers=plugin.headers())
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "invalid_request"
    assert body["newRollingKey"]
    assert body["keyVersion"] == 2

    plugin.update(response)
    follow_up = await client.get("/api/plugin/entries", headers=plugin.headers())
    assert follow_up.status_code == 200


async def test_generate_password(client, plugin):
    response = await client.post(
        "/api/plugin/generate",
        json={"length": 24, "uppercase": False, "symbols": False},
        headers=plugin.headers(),
    )
    assert response.status_code == 200
    password = response.json()["password"]
    assert len(password) == 24
    assert password == password.lower()
    assert not any(c in SYMBOL_CHARACTERS for c in password)


async def test_generate_password_defaults(client, plugin):
    response = await client.post("/api/plugin/generate", headers=plugin.headers())
    assert response.status_code == 200
    assert len(response.json()["password"]) == 16


async def test_generate_rejects_empty_alphabet(client, plugin):
    response = await client.post(
        "/api/plugin/generate",
        json={"uppercase": False, "lowercase": False, "numbers": False, "symbols": False},
        headers=plugin.headers(),
    )
    assert response.status_code == 400
    assert response.json()["newRollingKey"]


async def test_invalid_generate_body_still_delivers_next_key(client, plugin):
    response = await client.post("/api/plugin/generate", json={"length": "abc"}, headers=plugin.headers())
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "invalid_request"
    assert "length" in body["message"]
    assert body["keyVersion"] == 2

    plugin.update(response)
    follow_up = await client.get("/api/plugin/entries", headers=plugin.headers())
    assert follow_up.status_code == 200
    assert follow_up.json()["keyVersion"] == 3


async def test_malformed_json_body_still_delivers_next_key(client, plugin):
    response = await client.post(
        "/api/plugin/search",
        content=b"{not json",
        headers={**plugin.headers(), "content-type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["newRollingKey"]

    plugin.update(response)
    follow_up = await client.post(
        "/api/plugin/search", json=["github.com"], headers=plugin.headers()
    )
    assert follow_up.status_code == 400
    assert follow_up.json()["message"] == "Request body must be a JSON object."
    plugin.update(follow_up)

    assert (await client.get("/api/plugin/entries", headers=plugin.headers())).status_code == 200


async def test_unexpected_failure_still_delivers_next_key(client, plugin, monkeypatch):
    async def broken_list_entries(self, username):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(VaultService, "list_entries", broken_list_entries)
    response = await client.get("/api/plugin/entries", headers=plugin.headers())
    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "internal_error"
    assert "disk on fire" not in body["message"]
    assert body["keyVersion"] == 2
    assert body["newRollingKey"]


async def test_generate_rejects_bad_length(vault):
    with pytest.raises(InvalidRequestError):
        vault.generate_password(length=3)
    with pytest.raises(InvalidRequestError):
        vault.generate_password(length=257)


async def test_plugin_id_without_key(client, plugin):
    response = await client.get("/api/plugin/entries", headers={"x-plugin-id": plugin.plugin_id})
    assert response.status_code == 401
    assert response.json()["error"] == "unauthenticated"


async def test_no_credentials(client, vault):
    response = await client.get("/api/plugin/entries")
    assert response.status_code == 401


async def test_static_token_via_bearer_and_header(client, store, vault):
    raw_token, _ = await ApiTokenService(store).create_token("bob", name="cli")

    by_bearer = await client.get("/api/plugin/entries", headers={"Authorization": f"Bearer {raw_token}"})
    assert by_bearer.status_code == 200
    body = by_bearer.json()
    assert [e["loginUsername"] for e in body["entries"]] == ["bob-gh"]
    assert "newRollingKey" not in body

    by_header = await client.get("/api/plugin/entries", headers={"x-api-key": raw_token})
    assert by_header.status_code == 200
