from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from oauth_context.auth.errors import ArgumentError, CacheAmbiguityError
from oauth_context.auth.types import UserIdentifier, UserInfo
from oauth_context.cache.token_cache import TokenCache, TokenCacheQuery

from tests.factories import (
    AUTHORITY,
    CLIENT_ID,
    FIXED_NOW,
    OTHER_RESOURCE,
    RESOURCE,
    make_entry,
    make_key,
)


def _query(**overrides: object) -> TokenCacheQuery:
    values: dict[str, object] = {
        "authority": AUTHORITY,
        "resource": RESOURCE,
        "client_id": CLIENT_ID,
    }
    values.update(overrides)
    return TokenCacheQuery(**values)  # type: ignore[arg-type]


def test_store_then_lookup_returns_equal_entry() -> None:
    cache = TokenCache()
    entry = make_entry()
    cache.store(make_key(), entry)

    assert cache.lookup(_query()) == entry
    assert cache.count == 1


def test_store_same_key_replaces_entry() -> None:
    cache = TokenCache()
    cache.store(make_key(), make_entry(access_token="AT1"))
    cache.store(make_key(), make_entry(access_token="AT2"))

    assert cache.count == 1
    found = cache.lookup(_query())
    assert found is not None
    assert found.access_token == "AT2"


def test_key_equality_ignores_case_and_trailing_slash() -> None:
    lower = make_key(authority=AUTHORITY.lower(), resource=RESOURCE)
    mixed = make_key(
        authority=AUTHORITY.upper() + "/",
        resource=RESOURCE.upper(),
        displayable_id="USER@CONTOSO.COM",
    )
    assert lower == mixed
    assert hash(lower) == hash(mixed)
    assert make_key(unique_id="user-oid") != make_key(unique_id="USER-OID")


def test_lookup_is_strict_on_authority_resource_and_client() -> None:
    cache = TokenCache()
    cache.store(make_key(), make_entry())

    assert cache.lookup(_query(resource=OTHER_RESOURCE)) is None
    assert cache.lookup(_query(client_id="another-client")) is None
    assert cache.lookup(_query(authority="https://login.example.com/fabrikam.com")) is None
    assert cache.lookup(_query(authority=AUTHORITY + "/", resource=RESOURCE.upper())) is not None


def test_lookup_without_user_hint_fails_for_two_users() -> None:
    cache = TokenCache()
    cache.store(make_key(), make_entry(access_token="AT-A"))
    cache.store(
        make_key(unique_id="other-oid", displayable_id="other@contoso.com"),
        make_entry(access_token="AT-B"),
    )

    with pytest.raises(CacheAmbiguityError) as excinfo:
        cache.lookup(_query())
    assert excinfo.value.code == "multiple_matching_tokens_detected"


def test_user_hint_selects_matching_entry() -> None:
    cache = TokenCache()
    cache.store(make_key(), make_entry(access_token="AT-A"))
    cache.store(
        make_key(unique_id="other-oid", displayable_id="other@contoso.com"),
        make_entry(access_token="AT-B"),
    )

    by_upn = cache.lookup(_query(user=UserIdentifier.displayable("OTHER@contoso.com")))
    by_oid = cache.lookup(_query(user=UserIdentifier.unique("user-oid")))
    assert by_upn is not None and by_upn.access_token == "AT-B"
    assert by_oid is not None and by_oid.access_token == "AT-A"
    assert cache.lookup(_query(user=UserIdentifier.unique("missing"))) is None


def test_latest_expiry_wins_for_same_user() -> None:
    cache = TokenCache()
    cache.store(make_key(), make_entry(access_token="old", expires_on=FIXED_NOW))
    cache.store(
        make_key(is_multiple_resource_refresh_token=True),
        make_entry(access_token="new", expires_on=FIXED_NOW + timedelta(hours=2)),
    )

    found = cache.lookup(_query())
    assert found is not None
    assert found.access_token == "new"


def test_find_multiple_resource_token_spans_resources() -> None:
    cache = TokenCache()
    cache.store(make_key(), make_entry(refresh_token="plain"))
    cache.store(
        make_key(resource=OTHER_RESOURCE, is_multiple_resource_refresh_token=True),
        make_entry(refresh_token="mrrt"),
    )

    item = cache.find_multiple_resource_token(AUTHORITY, CLIENT_ID)
    assert item is not None
    assert item.entry.refresh_token == "mrrt"
    assert item.resource == OTHER_RESOURCE
    assert cache.find_multiple_resource_token(AUTHORITY, "another-client") is None
    assert (
        cache.find_multiple_resource_token(
            AUTHORITY, CLIENT_ID, UserIdentifier.unique("someone-else")
        )
        is None
    )


def test_app_only_query_ignores_user_entries() -> None:
    cache = TokenCache()
    cache.store(make_key(), make_entry(access_token="user-token"))
    cache.store(
        make_key(unique_id=None, displayable_id=None),
        make_entry(access_token="app-token", refresh_token=None),
    )

    found = cache.lookup(_query(app_only=True))
    assert found is not None
    assert found.access_token == "app-token"


def test_state_change_tracking() -> None:
    cache = TokenCache()
    assert not cache.has_state_changed

    cache.store(make_key(), make_entry())
    assert cache.has_state_changed

    cache.mark_persisted()
    assert not cache.has_state_changed

    assert cache.delete_item(make_key())
    assert cache.has_state_changed
    assert not cache.delete_item(make_key())


def test_clear_and_read_items_snapshot() -> None:
    cache = TokenCache()
    cache.store(make_key(), make_entry())
    cache.store(make_key(resource=OTHER_RESOURCE), make_entry())

    snapshot = cache.read_items()
    cache.clear()

    assert [item.resource for item in snapshot] == [RESOURCE, OTHER_RESOURCE]
    assert cache.count == 0
    assert cache.read_items() == []


def test_serialize_deserialize_keeps_entries() -> None:
    cache = TokenCache()
    user = UserInfo(unique_id="user-oid", displayable_id="user@contoso.com", given_name="Ada")
    cache.store(
        make_key(is_multiple_resource_refresh_token=True),
        make_entry(id_token_claims={"tid": "tenant"}, user_info=user),
    )
    blob = cache.serialize()
    assert json.loads(blob)["version"] == 1

    restored = TokenCache()
    restored.deserialize(blob)

    assert not restored.has_state_changed
    [item] = restored.read_items()
    assert item.key == make_key(is_multiple_resource_refresh_token=True)
    assert item.key.is_multiple_resource_refresh_token
    assert item.entry.expires_on == FIXED_NOW + timedelta(hours=1)
    assert item.entry.user_info == user
    assert item.tenant_id == "tenant"


def test_deserialize_rejects_corrupted_blob() -> None:
    cache = TokenCache()
    with pytest.raises(ArgumentError):
        cache.deserialize('{"version": 1, "items": [{"authority": 3}]}')


def test_concurrent_writes_are_serialised() -> None:
    cache = TokenCache()

    def _store(index: int) -> None:
        cache.store(
            make_key(resource=f"https://resource-{index}.example.com"),
            make_entry(access_token=f"AT-{index}"),
        )

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(_store, range(64)))

    assert cache.count == 64


def test_store_replaces_superseded_slot() -> None:
    cache = TokenCache()
    anonymous = make_key(unique_id=None, displayable_id=None)
    cache.store(anonymous, make_entry(access_token="old"))

    cache.store(make_key(), make_entry(access_token="new"), replaces=anonymous)

    [item] = cache.read_items()
    assert item.key == make_key()
    assert item.entry.access_token == "new"


def test_store_replacing_itself_keeps_entry() -> None:
    cache = TokenCache()
    cache.store(make_key(), make_entry(access_token="old"))

    cache.store(make_key(), make_entry(access_token="new"), replaces=make_key())

    assert cache.count == 1
    found = cache.lookup(_query())
    assert found is not None and found.access_token == "new"
