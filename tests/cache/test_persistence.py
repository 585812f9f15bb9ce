from __future__ import annotations

import pytest

from oauth_context.cache.persistence import (
    CachePersistenceBinding,
    FileTokenCachePersistence,
    KeyringTokenCachePersistence,
)
from oauth_context.cache.secret_store import SecretStore
from oauth_context.cache.token_cache import TokenCache

from tests.factories import make_entry, make_key
from tests.stubs import MemoryPersistence, StubKeyringBackend


def test_file_persistence_round_trip(tmp_path) -> None:
    persistence = FileTokenCachePersistence(tmp_path / "nested" / "cache.json")
    assert persistence.load() is None

    persistence.save('{"version": 1, "items": []}')

    assert persistence.path.exists()
    assert persistence.load() == '{"version": 1, "items": []}'


def test_file_persistence_clear_wipes_file(tmp_path) -> None:
    path = tmp_path / "cache.json"
    persistence = FileTokenCachePersistence(path)
    persistence.save("secret-tokens")

    persistence.clear()

    assert not path.exists()
    persistence.clear()


def test_keyring_persistence_uses_secret_store() -> None:
    backend = StubKeyringBackend(secure=True)
    persistence = KeyringTokenCachePersistence(
        SecretStore(service_name="pytest", backend=backend), key="cache"
    )

    persistence.save("blob")
    assert persistence.load() == "blob"
    assert backend.get_password("pytest", "cache") == "blob"

    persistence.clear()
    assert persistence.load() is None


@pytest.mark.asyncio
async def test_binding_loads_once() -> None:
    source = TokenCache()
    source.store(make_key(), make_entry())
    memory = MemoryPersistence(blob=source.serialize())
    cache = TokenCache()
    binding = CachePersistenceBinding(cache, memory)

    await binding.load()
    await binding.load()

    assert memory.loads == 1
    assert cache.count == 1
    assert not cache.has_state_changed


@pytest.mark.asyncio
async def test_binding_flushes_only_changes() -> None:
    memory = MemoryPersistence()
    cache = TokenCache()
    binding = CachePersistenceBinding(cache, memory)
    await binding.load()

    assert await binding.flush() is False
    cache.store(make_key(), make_entry())
    assert await binding.flush() is True
    assert await binding.flush() is False

    assert memory.saves == 1
    restored = TokenCache()
    restored.deserialize(memory.blob)
    assert restored.count == 1


@pytest.mark.asyncio
async def test_binding_discards_unreadable_blob() -> None:
    memory = MemoryPersistence(blob="not json at all")
    cache = TokenCache()
    binding = CachePersistenceBinding(cache, memory)

    await binding.load()

    assert cache.count == 0


@pytest.mark.asyncio
async def test_binding_clear_resets_cache_and_store() -> None:
    memory = MemoryPersistence()
    cache = TokenCache()
    cache.store(make_key(), make_entry())
    binding = CachePersistenceBinding(cache, memory)

    await binding.clear()

    assert cache.count == 0
    assert memory.clears == 1
    assert not cache.has_state_changed
