"""Rolling key rotation and static token validation for data-plane requests."""

import asyncio

import pytest

from noke.errors import UnauthenticatedError, UnauthorizedError
from noke.plugins import PluginAuthService, RequestAuthenticator
from noke.storage import SQLiteDocumentStore
from noke.tokens import ApiTokenService, TokenExpiry

pytestmark = pytest.mark.anyio


class YieldingStore(SQLiteDocumentStore):
    async def replace_if_match(self, doc, etag):
        await asyncio.sleep(0)
        return await super().replace_if_match(doc, etag)


async def _paired_plugin(store, encryptor, clock, username="alice"):
    service = PluginAuthService(store, encryptor=encryptor, clock=clock)
    registered = await service.register()
    requested = await service.request_auth(registered.plugin_id, registered.plugin_secret)
    await service.authorize(registered.plugin_id, requested.auth_token, username)
    result = await service.check_auth(registered.plugin_id, registered.plugin_secret)
    return registered.plugin_id, result.rolling_key


async def test_rolling_key_is_rotated_on_every_use(store, encryptor, clock):
    plugin_id, first_key = await _paired_plugin(store, encryptor, clock)
    authenticator = RequestAuthenticator(store, clock=clock)

    context = await authenticator.authenticate(plugin_id, first_key)
    assert context.username == "alice"
    assert context.is_rolling_key
    assert context.key_version == 2
    assert context.new_rolling_key and context.new_rolling_key != first_key

    following = await authenticator.authenticate(plugin_id, context.new_rolling_key)
    assert following.key_version == 3


async def test_spent_rolling_key_requires_reauth(store, encryptor, clock):
    plugin_id, first_key = await _paired_plugin(store, encryptor, clock)
    authenticator = RequestAuthenticator(store, clock=clock)
    await authenticator.authenticate(plugin_id, first_key)

    with pytest.raises(UnauthorizedError) as exc_info:
        await authenticator.authenticate(plugin_id, first_key)
    assert exc_info.value.require_reauth is True


async def test_rolling_key_for_unknown_or_revoked_plugin(store, encryptor, clock):
    plugin_id, key = await _paired_plugin(store, encryptor, clock)
    authenticator = RequestAuthenticator(store, clock=clock)

    with pytest.raises(UnauthorizedError):
        await authenticator.authenticate("plugin_unknown", key)

    await PluginAuthService(store, encryptor=encryptor, clock=clock).revoke(plugin_id, "alice")
    with pytest.raises(UnauthorizedError):
        await authenticator.authenticate(plugin_id, key)


async def test_missing_credential(store):
    authenticator = RequestAuthenticator(store)
    with pytest.raises(UnauthenticatedError):
        await authenticator.authenticate("plugin_x", None)
    with pytest.raises(UnauthenticatedError):
        await authenticator.authenticate(None, "")


async def test_concurrent_use_of_one_key_has_single_winner(store, encryptor, clock):
    plugin_id, key = await _paired_plugin(store, encryptor, clock)
    authenticator = RequestAuthenticator(YieldingStore(), clock=clock)

    results = await asyncio.gather(
        authenticator.authenticate(plugin_id, key),
        authenticator.authenticate(plugin_id, key),
        return_exceptions=True,
    )
    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert winners[0].key_version == 2
    assert len(losers) == 1
    assert isinstance(losers[0], UnauthorizedError) and losers[0].require_reauth


async def test_wrap_response_only_in_rolling_mode(store, encryptor, clock):
    plugin_id, key = await _paired_plugin(store, encryptor, clock)
    authenticator = RequestAuthenticator(store, clock=clock)

    rolling = await authenticator.authenticate(plugin_id, key)
    wrapped = rolling.wrap_response({"success": True})
    assert wrapped == {"success": True, "newRollingKey": rolling.new_rolling_key, "keyVersion": 2}

    raw_token, _ = await ApiTokenService(store, clock=clock).create_token("bob", name="laptop")
    static = await authenticator.authenticate(None, raw_token)
    assert static.wrap_response({"success": True}) == {"success": True}


async def test_static_token_mode(store, clock):
    raw_token, stored = await ApiTokenService(store, clock=clock).create_token("bob", name="laptop")
    authenticator = RequestAuthenticator(store, clock=clock)

    context = await authenticator.authenticate(None, raw_token)
    assert context.username == "bob"
    assert context.is_rolling_key is False
    assert context.token_name == "laptop"
    assert context.permissions == ["read"]

    # Static tokens are not rotated
    again = await authenticator.authenticate(None, raw_token)
    assert again.username == "bob"


async def test_expired_static_token_is_rejected(store, clock):
    raw_token, _ = await ApiTokenService(store, clock=clock).create_token("bob", expires_in=TokenExpiry.DAYS_30)
    authenticator = RequestAuthenticator(store, clock=clock)
    await authenticator.authenticate(None, raw_token)

    clock.advance(31 * 24 * 3600)
    with pytest.raises(UnauthorizedError):
        await authenticator.authenticate(None, raw_token)


async def test_unknown_static_token_is_rejected(store):
    with pytest.raises(UnauthorizedError):
        await RequestAuthenticator(store).authenticate(None, "no-such-token")
