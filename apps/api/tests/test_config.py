import json

import pytest

from babycare.config import load_config

ENV_NAMES = [
    "SUPABASE_URL",
    "NEXT_PUBLIC_SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "NEXT_PUBLIC_SUPABASE_ANON_KEY",
    "SUPABASE_SERVICE_ROLE_KEY",
    "BABYCARE_AUTH_EMAIL_DOMAIN",
    "BABYCARE_SESSION_FILE",
    "BABYCARE_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_file(tmp_path) -> None:
    config = load_config(tmp_path / "missing.json")

    assert config.auth_email_domain == "babybot.app"
    assert config.loader_max_retries == 3
    assert config.loader_retry_delay == 2.0
    assert config.tenant_poll_interval == 0.8
    with pytest.raises(RuntimeError):
        config.supabase_credentials()


def test_environment_overrides_file(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_file = tmp_path / "config.json"
    config_file.write_text(
        json.dumps({"supabase_url": "http://file.example", "supabase_anon_key": "file-key", "loader_retry_delay": 5})
    )
    monkeypatch.setenv("NEXT_PUBLIC_SUPABASE_URL", "http://env.example/")

    config = load_config(config_file)

    assert config.supabase_credentials() == ("http://env.example", "file-key")
    assert config.loader_retry_delay == 5.0


def test_server_names_win_over_public_names(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("SUPABASE_ANON_KEY", "server-key")
    monkeypatch.setenv("NEXT_PUBLIC_SUPABASE_ANON_KEY", "public-key")

    assert load_config(tmp_path / "missing.json").supabase_anon_key == "server-key"
