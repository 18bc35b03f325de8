"""
テスト用の共通フィクスチャ

FakeTableCRM は httpx.MockTransport 上で動く偽のリモート API。
ネットワークには出ない。受け取ったリクエストは requests に記録する。
"""

import asyncio
import json

import httpx
import pytest

from pos_order.aggregate import OrderDraft
from pos_order.client import TableCRMClient
from pos_order.models import (
    Organization,
    Paybox,
    PersistedCustomer,
    PriceType,
    Product,
    Warehouse,
)

VALID_TOKEN = "valid-token"


class FakeTableCRM:
    def __init__(self) -> None:
        self.customers = [
            {"id": i, "name": f"Покупатель {i}", "phone": f"+7900000{i:04d}", "email": f"c{i}@example.com"}
            for i in range(1, 46)
        ]
        self.warehouses = [{"id": 1, "name": "Основной склад", "address": "Москва"}]
        self.payboxes = [{"id": 2, "name": "Касса", "currency": "RUB"}]
        self.organizations = [{"id": 3, "name": "ООО Ромашка", "work_name": "Ромашка", "inn": "7700000000"}]
        self.price_types = [{"id": 4, "name": "Розница"}]
        self.products = [
            {"id": 7, "name": "Кофе", "article": "CF-7", "price": 150, "quantity": 5},
            {"id": 8, "name": "Чай", "article": "TE-8", "price": None, "quantity": 0},
        ]
        self.requests: list[httpx.Request] = []
        self.failures: dict[str, httpx.Response | Exception] = {}
        self.sale_result: list = [{"id": 501, "number": "501"}]
        self.sale_gate: asyncio.Event | None = None
        self.sale_started = asyncio.Event()

    def calls(self, path: str, method: str = "GET") -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(path) and r.method == method]

    def fail(self, path: str, failure: httpx.Response | Exception) -> None:
        self.failures[path] = failure

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api/v1")

        failure = self.failures.get(path)
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            # 同じ失敗を何度でも返せるよう毎回作り直す
            return httpx.Response(failure.status_code, content=failure.content, headers=failure.headers)

        if request.url.params.get("token") != VALID_TOKEN:
            return httpx.Response(401, json={"detail": "Not authenticated"})

        if path == "/docs_sales/" and request.method == "POST":
            self.sale_started.set()
            if self.sale_gate is not None:
                await self.sale_gate.wait()
            return httpx.Response(200, json=self.sale_result)

        if path == "/contragents/":
            phone = request.url.params.get("phone")
            if phone:
                return httpx.Response(200, json={"result": [c for c in self.customers if phone in c["phone"]]})
            limit = int(request.url.params["limit"])
            offset = int(request.url.params["offset"])
            return httpx.Response(
                200,
                json={"result": self.customers[offset:offset + limit], "count": len(self.customers)},
            )

        tables = {
            "/warehouses/": {"result": self.warehouses},
            "/payboxes/": {"data": self.payboxes},
            "/organizations/": {"result": self.organizations},
            "/price_types/": {"result": self.price_types},
            "/nomenclature/": {"result": self.products},
            "/users/": {"result": {"id": 1, "name": "Кассир"}},
        }
        if path in tables:
            return httpx.Response(200, json=tables[path])
        return httpx.Response(404, json={"detail": "Not Found"})

    def client(self, token: str = VALID_TOKEN) -> TableCRMClient:
        return TableCRMClient(token, base_url="https://crm.test/api/v1", transport=httpx.MockTransport(self.handler))

    def sale_bodies(self) -> list:
        return [json.loads(r.content) for r in self.calls("/docs_sales/", "POST")]


@pytest.fixture
def backend():
    return FakeTableCRM()


@pytest.fixture
async def client(backend):
    c = backend.client()
    yield c
    await c.aclose()


# ── ドメインオブジェクト ─────────────────────────


@pytest.fixture
def coffee():
    return Product(id=7, name="Кофе", article="CF-7", price=150, quantity=5)


@pytest.fixture
def tea():
    return Product(id=8, name="Чай", article="TE-8", price=None, quantity=0)


@pytest.fixture
def known_customers():
    return [
        PersistedCustomer(id=10, name="Иван", phone="+79990001122"),
        PersistedCustomer(id=11, name="Мария", phone="79990001122"),
        PersistedCustomer(id=12, name="Без телефона"),
    ]


@pytest.fixture
def complete_draft(coffee):
    draft = OrderDraft()
    draft.set_customer(PersistedCustomer(id=10, name="Иван", phone="+79990001122"))
    draft.select("warehouse", Warehouse(id=1, name="Основной склад"))
    draft.select("paybox", Paybox(id=2, name="Касса"))
    draft.select("organization", Organization(id=3, name="ООО Ромашка"))
    draft.select("price_type", PriceType(id=4, name="Розница"))
    draft.cart.add(coffee)
    return draft
