# backend/device_api/tests/test_config_and_cli.py
import pytest
from pydantic import ValidationError
from typer.testing import CliRunner

from backend.device_api import cli
from backend.device_api.core.config import Settings, get_settings

runner = CliRunner()
SECRET = "cli-test-secret-0123456789-abcdefghijklmnopqrstuvwxyz"


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)     # keep a developer's .env out of the way
    monkeypatch.setenv("JWT_SECRET_KEY", SECRET)
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_defaults(env):
    settings = get_settings()
    assert settings.SERVER_PORT == 8443
    assert settings.JWT_EXP_MINUTES == 1440
    assert settings.JWT_ISSUER == "device-assignment-api"
    assert settings.CLIENT_CERT_HEADER == "X-Client-Cert"


@pytest.mark.parametrize("overrides", [
    {"JWT_SECRET_KEY": ""},
    {"JWT_ALGORITHM": "RS256"},
    {"JWT_EXP_MINUTES": 0},
    {"STORAGE_BACKEND": "postgres", "DB_PASSWORD": ""},
    {"DB_POOL_MIN": 5, "DB_POOL_MAX": 2},
])
def test_settings_validation(overrides):
    values = {"JWT_SECRET_KEY": SECRET, "STORAGE_BACKEND": "memory", "_env_file": None}
    values.update(overrides)
    with pytest.raises(ValidationError):
        Settings(**values)


def test_tls_files_required_for_server():
    settings = Settings(JWT_SECRET_KEY=SECRET, STORAGE_BACKEND="memory", _env_file=None)
    with pytest.raises(ValueError, match="TLS_CERT_FILE"):
        settings.require_tls_files()


def test_issue_and_verify_token(env):
    issued = runner.invoke(cli.app, ["issue-token", "alice", "--minutes", "5"])
    assert issued.exit_code == 0, issued.output
    token = issued.output.strip()

    verified = runner.invoke(cli.app, ["verify-token", token])
    assert verified.exit_code == 0, verified.output
    assert "user_id:    alice" in verified.output


def test_verify_rejects_bad_token(env):
    result = runner.invoke(cli.app, ["verify-token", "not.a.token"])
    assert result.exit_code == 1


def test_init_db_memory(env):
    result = runner.invoke(cli.app, ["init-db"])
    assert result.exit_code == 0, result.output
    assert "Schema ready (memory)" in result.output
