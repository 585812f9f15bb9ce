from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
import respx

from oauth_context.cache.persistence import FileTokenCachePersistence
from oauth_context.cache.token_cache import TokenCache
from oauth_context.cli import main

from tests.factories import AUTHORITY, CLIENT_ID, RESOURCE, make_entry, make_key


@pytest.fixture
def env_file(tmp_path: Path) -> Path:
    path = tmp_path / "settings.env"
    path.write_text(
        "\n".join(
            [
                f"OAUTH_CONTEXT_CLIENT_ID={CLIENT_ID}",
                f"OAUTH_CONTEXT_AUTHORITY={AUTHORITY}",
                f"OAUTH_CONTEXT_RESOURCE={RESOURCE}",
                f"OAUTH_CONTEXT_TOKEN_CACHE_PATH={tmp_path / 'cache.json'}",
                "OAUTH_CONTEXT_HTTP_RETRIES=0",
            ]
        ),
        encoding="utf-8",
    )
    return path


def test_parse_challenge_prints_parameters(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = main(
        ["parse-challenge", f'Bearer authorization_uri="{AUTHORITY}", resource_id="{RESOURCE}"']
    )

    assert exit_code == 0
    assert json.loads(capsys.readouterr().out) == {"authority": AUTHORITY, "resource": RESOURCE}


def test_invalid_challenge_exits_with_error(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = main(["parse-challenge", 'Basic realm="x"'])

    assert exit_code == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "invalid_challenge_format" in captured.err


def test_cache_list_and_clear(
    env_file: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cache = TokenCache()
    cache.store(make_key(), make_entry())
    FileTokenCachePersistence(tmp_path / "cache.json").save(cache.serialize())

    assert main(["--env-file", str(env_file), "cache", "list"]) == 0
    [listed] = json.loads(capsys.readouterr().out)
    assert listed["resource"] == RESOURCE
    assert listed["user"] == "user@contoso.com"
    assert "access_token" not in listed

    assert main(["--env-file", str(env_file), "cache", "clear"]) == 0
    capsys.readouterr()
    assert not (tmp_path / "cache.json").exists()

    assert main(["--env-file", str(env_file), "cache", "list"]) == 0
    assert json.loads(capsys.readouterr().out) == []


def test_client_credentials_uses_settings(
    env_file: Path,
    tmp_path: Path,
    respx_mock: respx.Router,
    capsys: pytest.CaptureFixture[str],
) -> None:
    route = respx_mock.post(f"{AUTHORITY}/oauth2/token").mock(
        return_value=httpx.Response(
            200,
            json={"access_token": "app-access-token", "token_type": "Bearer", "expires_in": 3600},
        )
    )

    exit_code = main(["--env-file", str(env_file), "client-credentials", "--secret", "s3cret"])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["resource"] == RESOURCE
    assert payload["from_cache"] is False
    assert payload["access_token"] != "app-access-token"
    assert b"client_secret=s3cret" in route.calls.last.request.content
    assert (tmp_path / "cache.json").exists()


def test_client_credentials_service_error(
    env_file: Path,
    respx_mock: respx.Router,
    capsys: pytest.CaptureFixture[str],
) -> None:
    respx_mock.post(f"{AUTHORITY}/oauth2/token").mock(
        return_value=httpx.Response(401, json={"error": "invalid_client"})
    )

    exit_code = main(["--env-file", str(env_file), "client-credentials", "--secret", "wrong"])

    assert exit_code == 1
    assert "invalid_client" in capsys.readouterr().err


def test_missing_certificate_file_is_reported(
    env_file: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    missing = tmp_path / "absent.pfx"

    exit_code = main(
        ["--env-file", str(env_file), "client-credentials", "--certificate", str(missing)]
    )

    assert exit_code == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "FileNotFoundError" in captured.err
    assert "Traceback" not in captured.err
