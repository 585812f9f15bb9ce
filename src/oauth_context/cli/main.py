"""Command line access to discovery, client credentials and the token cache.

Usage:
    oauth-context parse-challenge 'Bearer authorization_uri="...", resource_id="..."'
    oauth-context discover https://api.example.com/resource
    oauth-context client-credentials --resource https://api.example.com --client-id ID --secret S
    oauth-context cache list
    oauth-context cache clear
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Sequence

from oauth_context.auth.challenge import discover, parse_authenticate_header
from oauth_context.auth.context import AuthenticationContext
from oauth_context.auth.credentials import (
    ClientAssertionCertificate,
    ClientCredential,
    Credential,
)
from oauth_context.auth.errors import AuthError
from oauth_context.auth.types import AuthenticationParameters, AuthenticationResult
from oauth_context.cache.persistence import FileTokenCachePersistence
from oauth_context.cache.token_cache import TokenCache
from oauth_context.config.settings import Settings, SettingsManager
from oauth_context.transport.client import HttpxClient
from oauth_context.utils import (
    LoggingOptions,
    configure_logging,
    get_logger,
    redact_secret,
)
from oauth_context.utils.errors import describe_exception


logger = get_logger(__name__)


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


def _parameters_payload(parameters: AuthenticationParameters) -> dict[str, str | None]:
    return {"authority": parameters.authority, "resource": parameters.resource}


def _result_payload(result: AuthenticationResult, *, show_token: bool) -> dict[str, Any]:
    return {
        "access_token": result.access_token if show_token else redact_secret(result.access_token),
        "token_type": result.access_token_type,
        "expires_on": result.expires_on.isoformat(),
        "resource": result.resource,
        "authority": result.authority,
        "from_cache": result.from_cache,
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="oauth-context", description=__doc__.splitlines()[0])
    parser.add_argument("--env-file", type=Path, help="Settings file to load (OAUTH_CONTEXT_* keys).")
    parser.add_argument("--debug", action="store_true", help="Verbose console logging.")
    commands = parser.add_subparsers(dest="command", required=True)

    challenge = commands.add_parser("parse-challenge", help="Parse a WWW-Authenticate header value.")
    challenge.add_argument("header")

    discover_cmd = commands.add_parser("discover", help="Probe a resource URL for its challenge.")
    discover_cmd.add_argument("resource_url")

    client = commands.add_parser(
        "client-credentials", help="Acquire an application token (client credentials grant)."
    )
    client.add_argument("--resource", help="Resource to request (defaults to settings).")
    client.add_argument("--client-id", help="Client id (defaults to settings).")
    client.add_argument("--authority", help="Authority URL (defaults to settings).")
    secret_group = client.add_mutually_exclusive_group(required=True)
    secret_group.add_argument("--secret", help="Client secret.")
    secret_group.add_argument("--certificate", type=Path, help="PKCS#12 or PEM certificate bundle.")
    client.add_argument("--password", help="Certificate password.")
    client.add_argument("--show-token", action="store_true", help="Print the raw access token.")

    cache = commands.add_parser("cache", help="Inspect or clear the persisted token cache.")
    cache_commands = cache.add_subparsers(dest="cache_command", required=True)
    cache_commands.add_parser("list", help="List cached tokens without secrets.")
    cache_commands.add_parser("clear", help="Securely wipe the token cache file.")
    return parser


def _credential(args: argparse.Namespace, client_id: str) -> Credential:
    if args.certificate is not None:
        return ClientAssertionCertificate.from_file(client_id, args.certificate, args.password)
    return ClientCredential(client_id, args.secret)


async def _client_credentials(args: argparse.Namespace, settings: Settings) -> dict[str, Any]:
    client_id = args.client_id or settings.client_id
    resource = args.resource or settings.resource
    if args.authority:
        settings.authority = args.authority
    credential = _credential(args, client_id or "")
    async with HttpxClient.from_settings(settings) as http_client:
        context = AuthenticationContext.from_settings(settings, http_client)
        result = await context.acquire_token_for_client(resource or "", credential)
    return _result_payload(result, show_token=args.show_token)


async def _discover(args: argparse.Namespace, settings: Settings) -> dict[str, Any]:
    async with HttpxClient.from_settings(settings) as http_client:
        parameters = await discover(args.resource_url, http_client)
    return _parameters_payload(parameters)


def _cache_command(args: argparse.Namespace, settings: Settings) -> Any:
    persistence = FileTokenCachePersistence(settings.token_cache_path)
    if args.cache_command == "clear":
        persistence.clear()
        return {"cleared": str(persistence.path)}

    cache = TokenCache()
    cache.deserialize(persistence.load())
    return [
        {
            "authority": item.authority,
            "resource": item.resource,
            "client_id": item.client_id,
            "user": item.displayable_id or item.unique_id,
            "expires_on": item.expires_on.isoformat(),
            "multiple_resource": item.key.is_multiple_resource_refresh_token,
        }
        for item in cache.read_items()
    ]


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(
        LoggingOptions(level="WARNING", debug=args.debug, file_logging=args.debug)
    )
    settings = SettingsManager(args.env_file).load()

    try:
        if args.command == "parse-challenge":
            _emit(_parameters_payload(parse_authenticate_header(args.header)))
        elif args.command == "discover":
            _emit(asyncio.run(_discover(args, settings)))
        elif args.command == "client-credentials":
            _emit(asyncio.run(_client_credentials(args, settings)))
        else:
            _emit(_cache_command(args, settings))
    except (AuthError, OSError) as exc:
        # OSError covers unreadable certificate and cache files.
        descriptor = describe_exception(exc)
        logger.debug(
            "Command failed",
            command=args.command,
            error_code=exc.code if isinstance(exc, AuthError) else type(exc).__name__,
        )
        print(f"{descriptor.headline} {descriptor.detail}", file=sys.stderr)
        if descriptor.suggestion:
            print(descriptor.suggestion, file=sys.stderr)
        return 1
    return 0


__all__ = ["main"]
