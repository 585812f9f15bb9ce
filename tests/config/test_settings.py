from __future__ import annotations

from pathlib import Path

from oauth_context.config.settings import (
    DEFAULT_EXPIRATION_MARGIN_SECONDS,
    DEFAULT_INSTANCE,
    Settings,
    SettingsManager,
)


def test_derive_authority_prefers_explicit_value(tmp_path: Path) -> None:
    settings = Settings(authority="https://login.example.com/contoso", token_cache_path=tmp_path / "c.json")
    assert settings.derive_authority() == "https://login.example.com/contoso"


def test_derive_authority_falls_back_to_tenant_then_common(tmp_path: Path) -> None:
    cache_path = tmp_path / "c.json"
    assert Settings(tenant_id="contoso", token_cache_path=cache_path).derive_authority() == (
        f"{DEFAULT_INSTANCE}/contoso"
    )
    assert Settings(token_cache_path=cache_path).derive_authority() == f"{DEFAULT_INSTANCE}/common"


def test_is_configured_requires_client_and_authority_source(tmp_path: Path) -> None:
    cache_path = tmp_path / "c.json"
    assert not Settings(client_id="app", token_cache_path=cache_path).is_configured
    assert Settings(client_id="app", tenant_id="t", token_cache_path=cache_path).is_configured


def test_load_reads_env_file(tmp_path: Path) -> None:
    env_file = tmp_path / "settings.env"
    env_file.write_text(
        "\n".join(
            [
                "OAUTH_CONTEXT_CLIENT_ID=app-id",
                "OAUTH_CONTEXT_TENANT_ID=contoso.onmicrosoft.com",
                f"OAUTH_CONTEXT_TOKEN_CACHE_PATH={tmp_path / 'cache.json'}",
                "OAUTH_CONTEXT_EXPIRATION_MARGIN_SECONDS=60",
                "OAUTH_CONTEXT_HTTP_RETRIES=not-a-number",
                "OAUTH_CONTEXT_HTTP_TIMEOUT_SECONDS=12.5",
            ]
        ),
        encoding="utf-8",
    )

    settings = SettingsManager(env_file).load()

    assert settings.client_id == "app-id"
    assert settings.tenant_id == "contoso.onmicrosoft.com"
    assert settings.token_cache_path == tmp_path / "cache.json"
    assert settings.expiration_margin_seconds == 60
    assert settings.http_retries == 1
    assert settings.http_timeout_seconds == 12.5


def test_environment_overrides_env_file(tmp_path: Path, monkeypatch) -> None:
    env_file = tmp_path / "settings.env"
    env_file.write_text("OAUTH_CONTEXT_CLIENT_ID=from-file\n", encoding="utf-8")
    monkeypatch.setenv("OAUTH_CONTEXT_CLIENT_ID", "from-env")
    monkeypatch.setenv("OAUTH_CONTEXT_TOKEN_CACHE_PATH", str(tmp_path / "cache.json"))

    assert SettingsManager(env_file).load().client_id == "from-env"


def test_save_then_load(tmp_path: Path, monkeypatch) -> None:
    env_file = tmp_path / "nested" / "settings.env"
    manager = SettingsManager(env_file)
    manager.save(
        Settings(
            client_id="app-id",
            authority="https://login.example.com/contoso",
            token_cache_path=tmp_path / "cache.json",
        )
    )

    assert env_file.exists()
    settings = manager.load()
    assert settings.client_id == "app-id"
    assert settings.authority == "https://login.example.com/contoso"
    assert settings.tenant_id is None
    assert settings.expiration_margin_seconds == DEFAULT_EXPIRATION_MARGIN_SECONDS
