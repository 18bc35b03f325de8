"""
注文セッション — コマンドハンドラ (書き込み側)

1 回のログインに対応する注文作成セッション。
表示層からのユーザー操作はすべてここを通り、各コンポーネントに委譲される。

  queries.ReferenceData / CustomerCatalog / ListCatalog  → 参照データ
  customers.CustomerResolver                              → 顧客の決定
  aggregate.OrderDraft (cart を含む)                      → 下書き
  wizard.StepGate                                         → ステップ遷移
  orchestrator.SubmissionCoordinator                      → 送信

確認ステップ (3) の間、下書きを変更するコマンドは StepBlockedError になる。
処理はすべて単一のイベントループ上で行うため、ロックは使わない。
"""

import logging

from .aggregate import REFERENCE_FIELDS, OrderDraft
from .client import TableCRMClient
from .customers import CustomerResolver, origin_label
from .errors import NotLoadedError, OrderError
from .models import OrderItem, PersistedCustomer
from .orchestrator import (
    ConfirmationDialog,
    PendingAction,
    SubmissionCoordinator,
    SubmissionResult,
)
from .queries import CustomerCatalog, ReferenceData, product_catalog
from .wizard import STEP_TITLES, Step, StepGate

logger = logging.getLogger(__name__)


class OrderSession:
    def __init__(self, client: TableCRMClient, customers_page_size: int | None = None) -> None:
        self.client = client
        self.draft = OrderDraft()
        self.references = ReferenceData(client)
        self.customers = CustomerCatalog(client, customers_page_size)
        self.products = product_catalog(client)
        self.resolver = CustomerResolver(self.draft)
        self.gate = StepGate(self.draft, self.references)
        self.coordinator = SubmissionCoordinator(client, self.draft, self.gate)
        self.dialog = ConfirmationDialog(self.coordinator)

    # ── 読み込み ─────────────────────────────────

    async def bootstrap(self) -> bool:
        """
        ログイン直後の読み込み。

        参照データ (トークン確認) が成功したときだけ顧客 1 ページ目と商品を取得する。
        戻り値はトークン確認の成否。
        """
        try:
            await self.references.load()
        except OrderError:
            if not self.references.token_valid:
                return False
        for load in (self.customers.load_first, self.products.load):
            try:
                await load()
            except OrderError as e:
                logger.warning("Bootstrap fetch failed: %s", e.message)
        return True

    async def reload_references(self) -> None:
        await self.references.load()

    async def load_more_customers(self) -> list[PersistedCustomer]:
        added = await self.customers.load_more()
        if added and not self.gate.read_only:
            self.resolver.resolve(self.customers.items)
        return added

    async def search_customers(self, phone: str) -> list[PersistedCustomer]:
        return await self.client.search_customers(phone)

    def invalidate(self) -> None:
        self.customers.invalidate()
        self.products.invalidate()
        self.references.invalidate()

    # ── ステップ 0: 顧客 ─────────────────────────

    def type_phone(self, raw: str):
        self.gate.ensure_editable()
        return self.resolver.on_phone_input(raw, self.customers.items)

    def select_customer(self, customer_id: int) -> PersistedCustomer:
        self.gate.ensure_editable()
        customer = self.customers.find(customer_id)
        if customer is None:
            raise NotLoadedError(f"customer {customer_id} is not loaded")
        return self.resolver.select(customer)

    def clear_customer(self) -> None:
        self.gate.ensure_editable()
        self.resolver.clear()

    # ── ステップ 1: 参照データの選択 ─────────────

    def select_reference(self, field: str, entity_id: int | None) -> None:
        self.gate.ensure_editable()
        if field not in REFERENCE_FIELDS:
            raise NotLoadedError(f"unknown reference field: {field}")
        if entity_id is None:
            self.draft.select(field, None)
            return
        entity = self.references.lists[field].find(entity_id)
        if entity is None:
            raise NotLoadedError(f"{field} {entity_id} is not loaded")
        self.draft.select(field, entity)

    # ── ステップ 2: 商品 ─────────────────────────

    def add_product(self, product_id: int) -> OrderItem:
        self.gate.ensure_editable()
        product = self.products.find(product_id)
        if product is None:
            raise NotLoadedError(f"product {product_id} is not loaded")
        return self.draft.cart.add(product)

    def set_quantity(self, product_id: int, quantity: int) -> OrderItem | None:
        self.gate.ensure_editable()
        return self.draft.cart.set_quantity(product_id, quantity)

    def change_quantity(self, product_id: int, delta: int) -> OrderItem | None:
        self.gate.ensure_editable()
        return self.draft.cart.change_quantity(product_id, delta)

    def remove_item(self, product_id: int) -> None:
        self.gate.ensure_editable()
        self.draft.cart.remove(product_id)

    # ── ステップ遷移 ─────────────────────────────

    def next_step(self) -> Step:
        return self.gate.next()

    def back_step(self) -> Step:
        return self.gate.back()

    # ── ステップ 3: 送信 ─────────────────────────

    def request_submit(self, action: PendingAction) -> None:
        self.dialog.request(action)

    def dismiss_submit(self) -> None:
        self.dialog.dismiss()

    async def confirm_submit(self) -> SubmissionResult | None:
        return self._after_submit(await self.dialog.confirm())

    async def submit(self, conduct: bool) -> SubmissionResult | None:
        return self._after_submit(await self.coordinator.submit(conduct))

    def _after_submit(self, result: SubmissionResult | None) -> SubmissionResult | None:
        if result is not None and result.success:
            self.resolver.phone_input = ""
        return result

    # ── 表示用 ───────────────────────────────────

    def summary(self) -> dict:
        customer = self.draft.customer
        return {
            "step": int(self.gate.step),
            "step_title": STEP_TITLES[self.gate.step],
            "can_advance": self.gate.can_advance(),
            "dead_end": self.gate.dead_end,
            "token_valid": self.references.token_valid,
            "load_error": self.references.load_error,
            "phone": self.resolver.phone_input,
            "phone_error": self.resolver.phone_error,
            "customer_origin": origin_label(customer) if customer else None,
            "draft": self.draft.snapshot(),
            "submitting": self.coordinator.state.in_flight,
            "pending_action": self.dialog.pending.value if self.dialog.pending else None,
        }
