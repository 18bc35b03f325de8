"""
カタログキャッシュ (読み取り側)

リモートの一覧データをメモリ上に保持し、表示用の絞り込みビューを提供する。

  CustomerCatalog  顧客。ページ単位で取得し「もっと読み込む」で末尾に追加する。
                   ページ間の重複排除はしない (バックエンドを信頼する)
  ListCatalog      倉庫・レジ口座・組織・価格種別・商品。1 回で全件取得する
  ReferenceData    4 つの参照一覧をまとめて読み込む。
                   warehouses をトークン確認として先に取得し、
                   成功してから残り 3 つを並行して取得する

テキスト絞り込みは表示用ビューだけを変え、取得済みデータは変更しない。
取得に失敗しても取得済みデータはそのまま残す。
例外は認証エラーで、このときは参照一覧をすべて空に戻す。

キャンセルはできないため、invalidate() 後に完了した取得結果は黙って捨てる。
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Generic, Iterable, TypeVar

from .client import TableCRMClient
from .config import settings
from .errors import AuthenticationError, ConnectivityError, OrderError
from .models import (
    Organization,
    Paybox,
    PersistedCustomer,
    PriceType,
    Product,
    ReferenceEntity,
    Warehouse,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

AUTH_LOAD_ERROR = "Токен недействителен. Пожалуйста, войдите с действительным токеном"
CONNECTIVITY_LOAD_ERROR = "Ошибка подключения к серверу. Проверьте интернет-соединение"
GENERIC_LOAD_ERROR = "Ошибка загрузки данных. Пожалуйста, попробуйте позже"


def matches(term: str, values: Iterable[str | None]) -> bool:
    """大文字小文字を区別しない部分一致"""
    needle = term.strip().lower()
    if not needle:
        return True
    return any(v and needle in v.lower() for v in values)


# ── 顧客 (ページング) ────────────────────────────


class CustomerCatalog:
    QUICK_PICK = 3
    QUICK_PICK_EXPANDED = 10

    def __init__(self, client: TableCRMClient, page_size: int | None = None) -> None:
        self.client = client
        self.page_size = page_size or settings.CUSTOMERS_PAGE_SIZE
        self.items: list[PersistedCustomer] = []
        self.page = 0
        self.total = 0
        self.has_more = False
        self.loading = False
        self.search_term = ""
        self._generation = 0

    async def load_first(self) -> list[PersistedCustomer]:
        """1 ページ目を取得して一覧を置き換える。"""
        page = await self._fetch(1)
        if page is None:
            return []
        self.items = list(page.items)
        self.page, self.total, self.has_more = 1, page.total, page.has_more
        return self.items

    async def load_more(self) -> list[PersistedCustomer]:
        """次のページを取得して末尾に追加する。追加された分を返す。"""
        if self.loading or not self.has_more:
            return []
        page = await self._fetch(self.page + 1)
        if page is None:
            return []
        self.items.extend(page.items)
        self.page, self.total, self.has_more = page.page, page.total, page.has_more
        return list(page.items)

    async def _fetch(self, number: int):
        generation = self._generation
        self.loading = True
        try:
            page = await self.client.list_customers(number, self.page_size)
        except OrderError as e:
            logger.warning("Failed to load customers page %d: %s", number, e.message)
            raise
        finally:
            if generation == self._generation:
                self.loading = False
        if generation != self._generation:
            logger.debug("Discarding stale customers page %d", number)
            return None
        return page

    def invalidate(self) -> None:
        self._generation += 1
        self.loading = False

    # ── 表示用ビュー ─────────────────────────────

    def filter(self, term: str) -> list[PersistedCustomer]:
        self.search_term = term or ""
        return self.visible

    @property
    def visible(self) -> list[PersistedCustomer]:
        return [c for c in self.items if matches(self.search_term, (c.name, c.phone, c.email))]

    def quick_pick(self, expanded: bool = False) -> list[PersistedCustomer]:
        limit = self.QUICK_PICK_EXPANDED if expanded else self.QUICK_PICK
        return self.visible[:limit]

    def more_count(self) -> int:
        """「Показать еще N」の N"""
        hidden = len(self.visible) - self.QUICK_PICK
        return max(0, min(hidden, self.QUICK_PICK_EXPANDED - self.QUICK_PICK))

    def find(self, customer_id: int) -> PersistedCustomer | None:
        return next((c for c in self.items if c.id == customer_id), None)


# ── 全件取得の一覧 ───────────────────────────────


class ListCatalog(Generic[T]):
    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[list[T]]],
        search_fields: Callable[[T], Iterable[str | None]],
    ) -> None:
        self.name = name
        self._fetch = fetch
        self._search_fields = search_fields
        self.items: list[T] = []
        self.loaded = False
        self.search_term = ""
        self._generation = 0

    async def load(self) -> list[T]:
        generation = self._generation
        try:
            items = await self._fetch()
        except OrderError as e:
            logger.warning("Failed to load %s: %s", self.name, e.message)
            raise
        if generation != self._generation:
            logger.debug("Discarding stale %s list", self.name)
            return self.items
        self.items, self.loaded = list(items), True
        return self.items

    def invalidate(self) -> None:
        self._generation += 1

    def reset(self) -> None:
        self.items, self.loaded = [], False

    def filter(self, term: str) -> list[T]:
        self.search_term = term or ""
        return self.visible

    @property
    def visible(self) -> list[T]:
        return [i for i in self.items if matches(self.search_term, self._search_fields(i))]

    def find(self, item_id: int) -> T | None:
        return next((i for i in self.items if getattr(i, "id", None) == item_id), None)


def reference_fields(entity: ReferenceEntity) -> tuple[str | None, ...]:
    return (entity.display_name,)


def product_fields(product: Product) -> tuple[str | None, ...]:
    return (product.name, product.article)


def product_catalog(client: TableCRMClient) -> ListCatalog[Product]:
    return ListCatalog("products", client.list_products, product_fields)


# ── 参照データ (トークン確認を兼ねる) ────────────


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class ReferenceData:
    def __init__(self, client: TableCRMClient) -> None:
        self.client = client
        self.warehouses: ListCatalog[Warehouse] = ListCatalog("warehouses", client.list_warehouses, reference_fields)
        self.payboxes: ListCatalog[Paybox] = ListCatalog("payboxes", client.list_payboxes, reference_fields)
        self.organizations: ListCatalog[Organization] = ListCatalog(
            "organizations", client.list_organizations, reference_fields
        )
        self.price_types: ListCatalog[PriceType] = ListCatalog("price_types", client.list_price_types, reference_fields)
        self.state = LoadState.IDLE
        self.token_valid = False
        self.error: OrderError | None = None

    @property
    def lists(self) -> dict[str, ListCatalog]:
        return {
            "warehouse": self.warehouses,
            "paybox": self.payboxes,
            "organization": self.organizations,
            "price_type": self.price_types,
        }

    @property
    def ready(self) -> bool:
        return self.token_valid

    @property
    def auth_failed(self) -> bool:
        return isinstance(self.error, AuthenticationError)

    @property
    def load_error(self) -> str | None:
        if self.error is None:
            return None
        if isinstance(self.error, AuthenticationError):
            return AUTH_LOAD_ERROR
        if isinstance(self.error, ConnectivityError):
            return CONNECTIVITY_LOAD_ERROR
        return GENERIC_LOAD_ERROR

    async def load(self) -> None:
        """
        参照データを読み込む。

        1. warehouses を取得 (トークン確認)
        2. 成功したら payboxes / organizations / price_types を並行取得

        失敗時は error を記録して例外を送出する。
        一度トークンが拒否されたら、同じトークンでは再試行しない (再ログインが必要)。
        """
        if self.auth_failed:
            logger.info("Reference reload refused: token was rejected")
            raise self.error
        self.state = LoadState.LOADING
        self.error = None

        try:
            await self.warehouses.load()
        except OrderError as e:
            self._fail(e)
            raise
        self.token_valid = True
        logger.info("Token probe succeeded: %d warehouses", len(self.warehouses.items))

        results = await asyncio.gather(
            self.payboxes.load(),
            self.organizations.load(),
            self.price_types.load(),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        for error in errors:
            if not isinstance(error, OrderError):
                raise error
        if errors:
            auth = next((e for e in errors if isinstance(e, AuthenticationError)), None)
            self._fail(auth or errors[0])
            raise auth or errors[0]
        self.state = LoadState.READY

    def _fail(self, error: OrderError) -> None:
        self.state = LoadState.FAILED
        self.error = error
        if isinstance(error, AuthenticationError):
            logger.warning("Token rejected (HTTP %d)", error.status_code)
            self.token_valid = False
            for catalog in self.lists.values():
                catalog.reset()

    def invalidate(self) -> None:
        for catalog in self.lists.values():
            catalog.invalidate()
