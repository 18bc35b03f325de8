"""
カート — 下書き注文の明細行

  add           同じ商品がすでにあれば数量 +1、なければ数量 1 で末尾に追加
  set_quantity  0 以下なら remove と同じ。在庫数による上限チェックはしない
  remove        該当なしなら何もしない
  total         Σ quantity × price_or_zero(price)

明細の並びは追加順。ソートはしない。
在庫 (product.quantity) は参考値で、上限として強制しない。
can_increment は「+」ボタンを無効化するための表示用判定にすぎない。
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Iterator

from .models import OrderItem, Product

ZERO = Decimal("0")
CENTS = Decimal("0.01")


def price_or_zero(price: Any) -> Decimal:
    """
    価格を金額計算用の Decimal に正規化する。

    欠損 (None)・NaN・数値として読めない値は 0 として扱う。
    エラーにはしない。
    """
    if price is None or isinstance(price, bool):
        return ZERO
    try:
        value = Decimal(str(price).strip())
    except (InvalidOperation, ValueError):
        return ZERO
    if not value.is_finite():
        return ZERO
    return value


class Cart:
    def __init__(self) -> None:
        self._items: list[OrderItem] = []

    def __iter__(self) -> Iterator[OrderItem]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> list[OrderItem]:
        return list(self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    def get(self, product_id: int) -> OrderItem | None:
        for item in self._items:
            if item.product.id == product_id:
                return item
        return None

    def quantity_of(self, product_id: int) -> int:
        item = self.get(product_id)
        return item.quantity if item else 0

    # ── 変更操作 ─────────────────────────────────

    def add(self, product: Product) -> OrderItem:
        item = self.get(product.id)
        if item:
            item.quantity += 1
            return item
        item = OrderItem(product=product, quantity=1)
        self._items.append(item)
        return item

    def set_quantity(self, product_id: int, quantity: int) -> OrderItem | None:
        if quantity <= 0:
            self.remove(product_id)
            return None
        item = self.get(product_id)
        if item:
            item.quantity = int(quantity)
        return item

    def change_quantity(self, product_id: int, delta: int) -> OrderItem | None:
        """「+」「−」ボタン用。結果が 0 以下なら明細を削除する。"""
        item = self.get(product_id)
        if not item:
            return None
        return self.set_quantity(product_id, item.quantity + delta)

    def remove(self, product_id: int) -> None:
        self._items = [i for i in self._items if i.product.id != product_id]

    def clear(self) -> None:
        self._items = []

    # ── 金額 ─────────────────────────────────────

    @staticmethod
    def line_total(item: OrderItem) -> Decimal:
        return item.quantity * price_or_zero(item.product.price)

    def total(self) -> Decimal:
        return sum((self.line_total(i) for i in self._items), ZERO)

    def can_increment(self, product: Product) -> bool:
        if product.quantity is None:
            return True
        return self.quantity_of(product.id) < product.quantity

    def snapshot(self) -> list[dict]:
        return [
            {
                "product": item.product.model_dump(),
                "quantity": item.quantity,
                "line_total": str(self.line_total(item)),
            }
            for item in self._items
        ]
