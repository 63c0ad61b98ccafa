from cryptography.fernet import Fernet
from typer.testing import CliRunner

from noke.cli import config, plugin_cli
from noke.cli.main_cli import app
from noke.client import JsonFileCredentialStore, NokePluginClient

runner = CliRunner()


def test_keygen_prints_usable_key():
    result = runner.invoke(app, ["keygen"])
    assert result.exit_code == 0
    key = result.stdout.strip().splitlines()[0]
    Fernet(key.encode("utf-8"))


def test_status_reads_credentials_file(tmp_path, monkeypatch):
    credentials_file = tmp_path / "plugin.json"
    credentials_file.write_text(
        '{"plugin_id": "plugin_1", "plugin_secret": "s", "rolling_key": "k", "authorized": true, "username": "alice"}',
        encoding="utf-8",
    )
    monkeypatch.setattr(config, "NOKE_CLI_CREDENTIALS_FILE", credentials_file)

    result = runner.invoke(app, ["plugin", "status"])
    assert result.exit_code == 0
    assert '"username": "alice"' in result.stdout
    assert '"hasRollingKey": true' in result.stdout
    assert '"k"' not in result.stdout


def test_entries_without_credentials_fails(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "NOKE_CLI_CREDENTIALS_FILE", tmp_path / "missing.json")
    result = runner.invoke(app, ["plugin", "entries"])
    assert result.exit_code == 1
    assert "Not authenticated" in result.stdout


def test_create_client_uses_configured_file(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "NOKE_CLI_CREDENTIALS_FILE", tmp_path / "plugin.json")
    client = plugin_cli.create_client()
    assert isinstance(client, NokePluginClient)
    assert isinstance(client.credential_store, JsonFileCredentialStore)
    assert client.credential_store.path == tmp_path / "plugin.json"
