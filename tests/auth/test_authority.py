from __future__ import annotations

import pytest

from oauth_context.auth.authority import Authority, normalize_authority
from oauth_context.auth.errors import ArgumentError


def test_parse_builds_endpoints() -> None:
    authority = Authority.parse("https://Login.Example.com/contoso.onmicrosoft.com/")

    assert authority.instance == "https://login.example.com"
    assert authority.tenant == "contoso.onmicrosoft.com"
    assert authority.url == "https://login.example.com/contoso.onmicrosoft.com"
    assert authority.token_endpoint.endswith("/contoso.onmicrosoft.com/oauth2/token")
    assert authority.authorize_endpoint.endswith("/contoso.onmicrosoft.com/oauth2/authorize")
    assert not authority.is_common


def test_common_tenant_detection_and_rewrite() -> None:
    authority = Authority.parse("https://login.example.com/Common")
    assert authority.is_common

    tenant = authority.with_tenant("tenant-id")
    assert str(tenant) == "https://login.example.com/tenant-id"
    assert not tenant.is_common


@pytest.mark.parametrize(
    "value",
    [
        "",
        "http://login.example.com/common",
        "https://login.example.com",
        "https://login.example.com/",
        "https://login.example.com/common?x=1",
        "login.example.com/common",
    ],
)
def test_parse_rejects_invalid_authorities(value: str) -> None:
    with pytest.raises(ArgumentError) as excinfo:
        Authority.parse(value)
    assert excinfo.value.code == "invalid_authority"


def test_normalize_authority_for_comparisons() -> None:
    assert normalize_authority(" HTTPS://Login.Example.com/Tenant/ ") == (
        "https://login.example.com/tenant"
    )
