"""
セッション管理 — トークンと下書きのライフサイクル

  TokenStore      起動時に永続ストレージから復元、ログアウトで削除
  SessionManager  ログインで空の下書きを持つ OrderSession を作り、
                  送信成功 (OrderSession 内) / ログアウトで下書きを破棄する

グローバル変数は使わず、依存はコンストラクタで明示的に渡す。
"""

import logging
from typing import Callable, Protocol

import redis.asyncio as aioredis

from .client import TableCRMClient
from .commands import OrderSession
from .config import settings

logger = logging.getLogger(__name__)


# ── トークンの永続化 ─────────────────────────────


class TokenStorage(Protocol):
    async def load(self) -> str | None: ...

    async def save(self, token: str) -> None: ...

    async def delete(self) -> None: ...


class MemoryTokenStorage:
    def __init__(self, token: str | None = None) -> None:
        self.token = token

    async def load(self) -> str | None:
        return self.token

    async def save(self, token: str) -> None:
        self.token = token

    async def delete(self) -> None:
        self.token = None


class RedisTokenStorage:
    """Redis の 1 キーにトークンを保存する"""

    def __init__(self, redis: aioredis.Redis, key: str | None = None) -> None:
        self.redis = redis
        self.key = key or settings.TOKEN_STORAGE_KEY

    async def load(self) -> str | None:
        value = await self.redis.get(self.key)
        if isinstance(value, bytes):
            value = value.decode()
        return value or None

    async def save(self, token: str) -> None:
        await self.redis.set(self.key, token)

    async def delete(self) -> None:
        await self.redis.delete(self.key)


class TokenStore:
    def __init__(self, storage: TokenStorage) -> None:
        self.storage = storage
        self.token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    async def restore(self) -> str | None:
        self.token = await self.storage.load()
        return self.token

    async def set(self, token: str) -> None:
        token = (token or "").strip()
        if not token:
            raise ValueError("Введите токен")
        await self.storage.save(token)
        self.token = token

    async def clear(self) -> None:
        await self.storage.delete()
        self.token = None


# ── セッション ───────────────────────────────────


ClientFactory = Callable[[str], TableCRMClient]


class SessionManager:
    def __init__(self, tokens: TokenStore, client_factory: ClientFactory = TableCRMClient) -> None:
        self.tokens = tokens
        self.client_factory = client_factory
        self.current: OrderSession | None = None

    async def restore(self) -> OrderSession | None:
        """保存済みトークンがあればセッションを開き直す。"""
        token = await self.tokens.restore()
        if not token:
            return None
        return await self._open(token)

    async def login(self, token: str) -> OrderSession:
        await self.tokens.set(token)
        logger.info("Logged in")
        return await self._open(self.tokens.token)

    async def logout(self) -> None:
        await self.close()
        await self.tokens.clear()
        logger.info("Logged out")

    async def _open(self, token: str) -> OrderSession:
        await self.close()
        session = OrderSession(self.client_factory(token))
        self.current = session
        await session.bootstrap()
        return session

    async def close(self) -> None:
        session, self.current = self.current, None
        if session is None:
            return
        session.invalidate()
        session.draft.clear()
        await session.client.aclose()
