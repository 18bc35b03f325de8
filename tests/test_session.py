"""トークンの永続化とセッションのライフサイクル"""

import pytest

from pos_order.session import (
    MemoryTokenStorage,
    RedisTokenStorage,
    SessionManager,
    TokenStore,
)


class FakeRedis:
    """redis.asyncio.Redis のうち get / set / delete だけを持つ"""

    def __init__(self):
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value.encode()

    async def delete(self, key):
        self.data.pop(key, None)


class TestRedisTokenStorage:
    async def test_round_trip_through_single_key(self):
        redis = FakeRedis()
        storage = RedisTokenStorage(redis)
        await storage.save("abc")
        assert redis.data == {"tablecrm_token": b"abc"}
        assert await storage.load() == "abc"
        await storage.delete()
        assert await storage.load() is None


class TestTokenStore:
    async def test_restore_from_storage(self):
        store = TokenStore(MemoryTokenStorage("saved"))
        assert store.is_authenticated is False
        assert await store.restore() == "saved"
        assert store.is_authenticated is True

    async def test_set_strips_and_persists(self):
        storage = MemoryTokenStorage()
        store = TokenStore(storage)
        await store.set("  tok  ")
        assert storage.token == "tok"

    async def test_empty_token_is_rejected(self):
        store = TokenStore(MemoryTokenStorage())
        with pytest.raises(ValueError, match="Введите токен"):
            await store.set("   ")

    async def test_clear(self):
        storage = MemoryTokenStorage("saved")
        store = TokenStore(storage)
        await store.restore()
        await store.clear()
        assert storage.token is None
        assert store.is_authenticated is False


class TestSessionManager:
    async def test_login_bootstraps_session(self, backend):
        manager = SessionManager(TokenStore(MemoryTokenStorage()), backend.client)
        session = await manager.login("valid-token")
        assert manager.current is session
        assert session.references.token_valid is True
        assert len(session.customers.items) == 20
        assert len(session.products.items) == 2
        await manager.close()

    async def test_login_with_bad_token_skips_catalogs(self, backend):
        manager = SessionManager(TokenStore(MemoryTokenStorage()), backend.client)
        session = await manager.login("wrong")
        assert session.references.token_valid is False
        assert session.gate.dead_end is True
        assert backend.calls("/contragents/") == []
        assert backend.calls("/nomenclature/") == []
        await manager.close()

    async def test_restore_without_saved_token(self, backend):
        manager = SessionManager(TokenStore(MemoryTokenStorage()), backend.client)
        assert await manager.restore() is None
        assert backend.requests == []

    async def test_restore_with_saved_token(self, backend):
        manager = SessionManager(TokenStore(MemoryTokenStorage("valid-token")), backend.client)
        session = await manager.restore()
        assert session.references.token_valid is True
        await manager.close()

    async def test_logout_discards_draft_and_token(self, backend):
        storage = MemoryTokenStorage()
        manager = SessionManager(TokenStore(storage), backend.client)
        session = await manager.login("valid-token")
        session.type_phone("+79991234567")
        await manager.logout()
        assert manager.current is None
        assert session.draft.customer is None
        assert storage.token is None

    async def test_relogin_starts_with_empty_draft(self, backend):
        manager = SessionManager(TokenStore(MemoryTokenStorage()), backend.client)
        first = await manager.login("valid-token")
        first.add_product(7)
        second = await manager.login("valid-token")
        assert second is not first
        assert second.draft.cart.is_empty
        assert first.draft.cart.is_empty
        await manager.close()
