"""
送信コーディネーター — 販売伝票の作成

下書き注文を POST /docs_sales/ の伝票形式に変換して送信する。

  1. 状態を IDLE → SUBMITTING に切り替える (compare-and-swap)
     すでに SUBMITTING なら何もせず None を返す (通信なし・エラー表示なし)
  2. ステップ 3 であること、下書きが完全であることを送信時点で検証し直す
     (満たさなければローカルエラー。通信はしない)
  3. 伝票を送信
     ├─ 成功 → 下書きを空に戻し、ウィザードをステップ 0 に戻す
     └─ 失敗 → 下書きには一切触れない (そのまま再送信できる)
  4. どの経路でも finally で IDLE に戻す

同時に 2 つの SUBMITTING が存在しないことが、この状態機械の不変条件。
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP
from enum import Enum

from .aggregate import OrderDraft
from .cart import CENTS, price_or_zero
from .client import TableCRMClient
from .config import settings
from .errors import DraftIncompleteError, OrderError, StepBlockedError, describe_sale_error
from .models import SaleConfirmation
from .wizard import StepGate

logger = logging.getLogger(__name__)


class PendingAction(str, Enum):
    CREATE = "create"
    CREATE_AND_CONDUCT = "create_and_conduct"

    @property
    def conduct(self) -> bool:
        return self is PendingAction.CREATE_AND_CONDUCT


class SubmissionPhase(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"


class SubmissionState:
    """IDLE → SUBMITTING → IDLE"""

    def __init__(self) -> None:
        self.phase = SubmissionPhase.IDLE
        self.pending_action: PendingAction | None = None

    @property
    def in_flight(self) -> bool:
        return self.phase is SubmissionPhase.SUBMITTING

    def try_begin(self, action: PendingAction) -> bool:
        # await を挟まないので、単一イベントループ上ではこれで原子的
        if self.phase is not SubmissionPhase.IDLE:
            return False
        self.phase = SubmissionPhase.SUBMITTING
        self.pending_action = action
        return True

    def finish(self) -> None:
        self.phase = SubmissionPhase.IDLE
        self.pending_action = None


@dataclass
class SubmissionResult:
    success: bool
    conduct: bool
    confirmation: SaleConfirmation | None = None
    error: OrderError | None = None

    @property
    def message(self) -> str:
        if self.success:
            return "Продажа успешно создана и проведена!" if self.conduct else "Продажа успешно создана!"
        return describe_sale_error(self.error)


def paid_rubles(draft: OrderDraft) -> str:
    return str(draft.cart.total().quantize(CENTS, rounding=ROUND_HALF_UP))


def build_sale_payload(draft: OrderDraft, conduct: bool, dated: int | None = None) -> list[dict]:
    """下書きを販売伝票 (1 要素の配列) に変換する。"""
    customer = draft.customer
    return [
        {
            "priority": 0,
            "dated": dated if dated is not None else int(time.time()),
            "operation": settings.SALE_OPERATION,
            "tax_included": True,
            "tax_active": True,
            "goods": [
                {
                    "price": float(price_or_zero(item.product.price)),
                    "quantity": item.quantity,
                    "unit": settings.SALE_UNIT_ID,
                    "discount": 0,
                    "sum_discounted": 0,
                    "nomenclature": item.product.id,
                }
                for item in draft.cart
            ],
            "settings": {},
            "warehouse": draft.warehouse.id,
            # 一時顧客はバックエンドに存在しないため contragent なしで送る
            "contragent": None if customer.is_ephemeral else customer.id,
            "paybox": draft.paybox.id,
            "organization": draft.organization.id,
            "status": conduct,
            "paid_rubles": paid_rubles(draft),
            "paid_lt": 0,
        }
    ]


class SubmissionCoordinator:
    def __init__(self, client: TableCRMClient, draft: OrderDraft, gate: StepGate) -> None:
        self.client = client
        self.draft = draft
        self.gate = gate
        self.state = SubmissionState()

    async def submit(self, conduct: bool) -> SubmissionResult | None:
        """
        伝票を作成する。

        送信中に呼ばれた場合は None (黙って無視)。
        それ以外は成功・失敗を SubmissionResult で返す。
        """
        action = PendingAction.CREATE_AND_CONDUCT if conduct else PendingAction.CREATE
        if not self.state.try_begin(action):
            logger.warning("Sale submission already in progress, ignoring")
            return None

        try:
            try:
                self.gate.ensure_submittable()
            except StepBlockedError as e:
                logger.warning("Sale submission outside confirmation step %d", self.gate.step)
                return SubmissionResult(False, conduct, error=e)

            missing = self.draft.missing_fields()
            if missing:
                return SubmissionResult(False, conduct, error=DraftIncompleteError(missing))

            payload = build_sale_payload(self.draft, conduct)
            logger.info(
                "Submitting sale: %d items, paid_rubles=%s, conduct=%s",
                len(self.draft.cart), payload[0]["paid_rubles"], conduct,
            )
            try:
                response = await self.client.create_sale(payload)
            except OrderError as e:
                logger.warning("Sale submission failed: %s", e.message)
                return SubmissionResult(False, conduct, error=e)

            confirmation = SaleConfirmation(
                conduct=conduct,
                submitted_at=datetime.now(timezone.utc),
                paid_rubles=payload[0]["paid_rubles"],
                response=response,
            )
            self.draft.clear()
            self.gate.reset()
            logger.info("Sale created: documents=%s", confirmation.document_ids)
            return SubmissionResult(True, conduct, confirmation=confirmation)
        finally:
            self.state.finish()


class ConfirmationDialog:
    """
    送信前の確認ダイアログ。

    保持するのは「どちらの送信か」だけ。
    送信中は confirm しても二重に送信されない。
    """

    def __init__(self, coordinator: SubmissionCoordinator) -> None:
        self.coordinator = coordinator
        self.pending: PendingAction | None = None

    @property
    def is_open(self) -> bool:
        return self.pending is not None

    def request(self, action: PendingAction) -> None:
        self.pending = action

    def dismiss(self) -> None:
        self.pending = None

    async def confirm(self) -> SubmissionResult | None:
        if self.pending is None or self.coordinator.state.in_flight:
            return None
        try:
            return await self.coordinator.submit(self.pending.conduct)
        finally:
            self.pending = None
