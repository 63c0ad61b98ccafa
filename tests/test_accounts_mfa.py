"""Account registration, login and the TOTP second factor."""

import pyotp
import pytest

from noke.accounts import AccountService
from noke.accounts.models import profile_id
from noke.errors import ConflictError, InvalidRequestError, UnauthenticatedError

pytestmark = pytest.mark.anyio

# Never a valid TOTP code, which is always numeric
BAD_CODE = "abcdef"

ALICE = {"username": "alice", "password": "correct horse battery staple"}


async def _register(client, credentials=ALICE):
    response = await client.post("/api/auth/register", json=credentials)
    assert response.status_code == 201
    return response.json()


async def _enable_totp(client, credentials=ALICE):
    secret = (await client.post("/api/auth/totp/setup", json=credentials)).json()["secret"]
    enabled = await client.post("/api/auth/totp/enable", json={**credentials, "code": pyotp.TOTP(secret).now()})
    assert enabled.status_code == 200
    return secret


async def test_register_and_login(client):
    registered = await _register(client)
    assert registered["username"] == "alice"

    duplicate = await client.post("/api/auth/register", json=ALICE)
    assert duplicate.status_code == 409

    login = await client.post("/api/auth/login", json=ALICE)
    assert login.status_code == 200
    assert login.json()["success"] is True
    assert "mfaRequired" not in login.json()

    wrong = await client.post("/api/auth/login", json={**ALICE, "password": "nope"})
    assert wrong.status_code == 401

    unknown = await client.post("/api/auth/login", json={**ALICE, "username": "nobody"})
    assert unknown.status_code == 401


async def test_register_rejects_reserved_and_empty_names(client):
    reserved = await client.post("/api/auth/register", json={"username": "_plugins", "password": "pw"})
    assert reserved.status_code == 400
    empty = await client.post("/api/auth/register", json={"username": "", "password": "pw"})
    assert empty.status_code == 400


async def test_totp_enrollment_and_login(client):
    await _register(client)

    no_setup = await client.post("/api/auth/totp/enable", json={**ALICE, "code": "123456"})
    assert no_setup.status_code == 400

    setup = (await client.post("/api/auth/totp/setup", json=ALICE)).json()
    assert setup["otpauthUrl"].startswith("otpauth://totp/")
    assert "issuer=NoKe" in setup["otpauthUrl"]
    totp = pyotp.TOTP(setup["secret"])

    rejected = await client.post("/api/auth/totp/enable", json={**ALICE, "code": BAD_CODE})
    assert rejected.status_code == 401

    # The pending secret survives a wrong code
    enabled = await client.post("/api/auth/totp/enable", json={**ALICE, "code": totp.now()})
    assert enabled.status_code == 200

    login = (await client.post("/api/auth/login", json=ALICE)).json()
    assert login["success"] is False
    assert login["mfaRequired"] is True

    bad = await client.post("/api/auth/verify-mfa", json={**ALICE, "code": BAD_CODE})
    assert bad.status_code == 401

    wrong_password = await client.post(
        "/api/auth/verify-mfa", json={**ALICE, "password": "nope", "code": totp.now()}
    )
    assert wrong_password.status_code == 401

    verified = await client.post("/api/auth/verify-mfa", json={**ALICE, "code": totp.now()})
    assert verified.status_code == 200
    assert verified.json()["success"] is True
    assert verified.json()["username"] == "alice"


async def test_disable_totp(client):
    await _register(client)
    await _enable_totp(client)

    disabled = await client.post("/api/auth/totp/disable", json=ALICE)
    assert disabled.status_code == 200

    login = (await client.post("/api/auth/login", json=ALICE)).json()
    assert login["success"] is True

    not_enabled = await client.post("/api/auth/verify-mfa", json={**ALICE, "code": "123456"})
    assert not_enabled.status_code == 400


async def test_new_setup_keeps_active_secret_until_confirmed(client):
    await _register(client)
    active = await _enable_totp(client)

    await client.post("/api/auth/totp/setup", json=ALICE)
    verified = await client.post("/api/auth/verify-mfa", json={**ALICE, "code": pyotp.TOTP(active).now()})
    assert verified.status_code == 200


async def test_secrets_are_stored_encrypted(store, encryptor, clock):
    service = AccountService(store, encryptor, clock=clock)
    await service.register_user("bob", "hunter2")
    setup = await service.setup_totp("bob", "hunter2")

    doc = await store.get(profile_id("bob"), "bob")
    assert doc["password_hash"] != "hunter2"
    assert doc["totp_secret_pending"].startswith("fernet:")
    assert setup.secret not in str(doc)

    await service.enable_totp("bob", "hunter2", pyotp.TOTP(setup.secret).now())
    doc = await store.get(profile_id("bob"), "bob")
    assert doc["totp_enabled"] is True
    assert doc["totp_secret"].startswith("fernet:")
    assert encryptor.decrypt(doc["totp_secret"]) == setup.secret
    assert doc["totp_secret_pending"] is None


async def test_failed_enable_leaves_pending_secret_untouched(store, encryptor, clock):
    service = AccountService(store, encryptor, clock=clock)
    await service.register_user("erin", "hunter2")
    setup = await service.setup_totp("erin", "hunter2")
    before = await store.get(profile_id("erin"), "erin")

    with pytest.raises(UnauthenticatedError):
        await service.enable_totp("erin", "hunter2", BAD_CODE)

    after = await store.get(profile_id("erin"), "erin")
    assert after["totp_secret_pending"] == before["totp_secret_pending"]
    assert encryptor.decrypt(after["totp_secret_pending"]) == setup.secret
    assert after["totp_enabled"] is False
    assert after["totp_secret"] is None
    assert after["_etag"] == before["_etag"]


async def test_service_errors(store, encryptor):
    service = AccountService(store, encryptor)
    await service.register_user("carol", "pw")
    with pytest.raises(ConflictError):
        await service.register_user("carol", "other")
    with pytest.raises(InvalidRequestError):
        await service.register_user("dave", "x" * 73)
    with pytest.raises(UnauthenticatedError):
        await service.login("carol", "x" * 73)
