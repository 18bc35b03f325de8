"""
下書き注文集約 (OrderDraft Aggregate)

顧客 + 4 つの参照選択 (倉庫・レジ口座・組織・価格種別) + カートをまとめる集約ルート。

ライフサイクル:
    ログイン直後に空で作成
    → ステップ 0〜2 でユーザー操作により変更
    → ステップ 3 では読み取りのみ
    → 送信成功 / ログアウトで空に戻す
"""

from .cart import Cart
from .models import (
    EphemeralCustomer,
    Organization,
    Paybox,
    PersistedCustomer,
    PriceType,
    ReferenceEntity,
    Warehouse,
)

REFERENCE_FIELDS: dict[str, type[ReferenceEntity]] = {
    "warehouse": Warehouse,
    "paybox": Paybox,
    "organization": Organization,
    "price_type": PriceType,
}


class OrderDraft:
    def __init__(self) -> None:
        self.customer: PersistedCustomer | EphemeralCustomer | None = None
        self.warehouse: Warehouse | None = None
        self.paybox: Paybox | None = None
        self.organization: Organization | None = None
        self.price_type: PriceType | None = None
        self.cart = Cart()

    # ── 変更操作 ─────────────────────────────────

    def set_customer(self, customer: PersistedCustomer | EphemeralCustomer | None) -> None:
        self.customer = customer

    def select(self, field: str, entity: ReferenceEntity | None) -> None:
        """参照データを選択する。None で選択解除。"""
        expected = REFERENCE_FIELDS.get(field)
        if expected is None:
            raise KeyError(f"unknown reference field: {field}")
        if entity is not None and not isinstance(entity, expected):
            raise TypeError(f"{field} expects {expected.__name__}, got {type(entity).__name__}")
        setattr(self, field, entity)

    def clear(self) -> None:
        self.customer = None
        for field in REFERENCE_FIELDS:
            setattr(self, field, None)
        self.cart.clear()

    # ── 完全性の判定 ─────────────────────────────

    @property
    def has_customer(self) -> bool:
        return self.customer is not None

    @property
    def has_items(self) -> bool:
        return not self.cart.is_empty

    def missing_references(self) -> list[str]:
        return [field for field in REFERENCE_FIELDS if getattr(self, field) is None]

    def missing_fields(self) -> list[str]:
        missing = [] if self.has_customer else ["customer"]
        missing += self.missing_references()
        if not self.has_items:
            missing.append("items")
        return missing

    def is_complete(self) -> bool:
        return not self.missing_fields()

    def snapshot(self) -> dict:
        """現在の状態を JSON 化できる dict で返す。"""
        return {
            "customer": self.customer.model_dump() if self.customer else None,
            **{
                field: entity.model_dump() if (entity := getattr(self, field)) else None
                for field in REFERENCE_FIELDS
            },
            "items": self.cart.snapshot(),
            "total": str(self.cart.total()),
        }
