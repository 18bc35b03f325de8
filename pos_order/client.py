"""
TableCRM API クライアント

リモートの商取引 API を JSON over HTTPS で呼び出す。
トークンはヘッダではなくクエリパラメータ token として毎回付与する。

httpx の例外はここで errors モジュールの分類に変換するため、
呼び出し側が httpx を意識する必要はない。
"""

import logging
from typing import Any

import httpx

from .config import settings
from .errors import AuthenticationError, ConnectivityError, error_from_payload
from .models import (
    CustomerPage,
    Organization,
    Paybox,
    PersistedCustomer,
    PriceType,
    Product,
    Warehouse,
)

logger = logging.getLogger(__name__)

AUTH_STATUSES = (401, 403)


def unwrap_rows(payload: Any) -> list:
    """{result: [...]} / {data: [...]} のどちらにも対応する。"""
    if isinstance(payload, dict):
        rows = payload.get("result") or payload.get("data") or []
    else:
        rows = payload or []
    return rows if isinstance(rows, list) else []


class TableCRMClient:
    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token = token
        self._http = httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            timeout=timeout if timeout is not None else settings.HTTP_TIMEOUT,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "TableCRMClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ── 共通処理 ─────────────────────────────────

    async def _request(self, method: str, path: str, params: dict | None = None, json: Any = None) -> Any:
        query = {"token": self.token, **(params or {})}
        try:
            resp = await self._http.request(method, path, params=query, json=json)
        except httpx.TransportError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise ConnectivityError() from e

        if resp.status_code in AUTH_STATUSES:
            raise AuthenticationError(resp.status_code)
        if resp.is_error:
            raise error_from_payload(resp.status_code, _json_or_none(resp))
        return _json_or_none(resp)

    async def _get(self, path: str, **params) -> Any:
        return await self._request("GET", path, params=params)

    # ── 顧客 (contragents) ─────────────────────────

    async def list_customers(self, page: int = 1, limit: int | None = None) -> CustomerPage:
        limit = limit or settings.CUSTOMERS_PAGE_SIZE
        payload = await self._get("/contragents/", limit=limit, offset=(page - 1) * limit)
        total = int(payload.get("count") or 0) if isinstance(payload, dict) else 0
        return CustomerPage(
            items=[PersistedCustomer.model_validate(row) for row in unwrap_rows(payload)],
            total=total,
            page=page,
            limit=limit,
            has_more=total > page * limit,
        )

    async def search_customers(self, phone: str) -> list[PersistedCustomer]:
        payload = await self._get("/contragents/", phone=phone)
        return [PersistedCustomer.model_validate(row) for row in unwrap_rows(payload)]

    async def get_user(self) -> Any:
        payload = await self._get("/users/")
        if isinstance(payload, dict) and "result" in payload:
            return payload["result"]
        return payload

    # ── 参照データ ───────────────────────────────

    async def list_warehouses(self) -> list[Warehouse]:
        return [Warehouse.model_validate(row) for row in unwrap_rows(await self._get("/warehouses/"))]

    async def list_payboxes(self) -> list[Paybox]:
        return [Paybox.model_validate(row) for row in unwrap_rows(await self._get("/payboxes/"))]

    async def list_organizations(self) -> list[Organization]:
        return [Organization.model_validate(row) for row in unwrap_rows(await self._get("/organizations/"))]

    async def list_price_types(self) -> list[PriceType]:
        return [PriceType.model_validate(row) for row in unwrap_rows(await self._get("/price_types/"))]

    async def list_products(self) -> list[Product]:
        return [Product.model_validate(row) for row in unwrap_rows(await self._get("/nomenclature/"))]

    # ── 販売伝票 ─────────────────────────────────

    async def create_sale(self, documents: list[dict]) -> Any:
        """POST /docs_sales/ (本文は伝票の配列。通常は 1 件)"""
        return await self._request("POST", "/docs_sales/", json=documents)


def _json_or_none(resp: httpx.Response) -> Any:
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return None
