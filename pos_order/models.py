"""
データモデル

リモート API から取得した参照データと、下書き注文を構成する値オブジェクト。
参照データは取得後に変更しない (frozen)。

顧客は 2 種類:
  PersistedCustomer  バックエンドに存在する顧客 (id はバックエンド採番)
  EphemeralCustomer  電話番号から一時的に作った顧客 (下書きの中だけに存在)
kind フィールドで判別するため、id の大小で区別する必要はない。
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _none_to_empty(v: Any) -> Any:
    return "" if v is None else v


# ── 顧客 ─────────────────────────────────────────


class PersistedCustomer(BaseModel):
    """バックエンドに登録済みの顧客"""

    model_config = ConfigDict(frozen=True, extra="ignore")

    kind: Literal["persisted"] = "persisted"
    id: int
    name: str = ""
    phone: str | None = None
    email: str | None = None

    coerce_name = field_validator("name", mode="before")(_none_to_empty)

    @property
    def is_ephemeral(self) -> bool:
        return False

    @property
    def key(self) -> str:
        return f"persisted:{self.id}"


class EphemeralCustomer(BaseModel):
    """入力された電話番号から作った一時顧客"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["ephemeral"] = "ephemeral"
    temp_id: int
    name: str
    phone: str
    email: None = None

    @property
    def is_ephemeral(self) -> bool:
        return True

    @property
    def key(self) -> str:
        return f"ephemeral:{self.temp_id}"


Customer = Annotated[
    Union[PersistedCustomer, EphemeralCustomer],
    Field(discriminator="kind"),
]


# ── 参照データ (倉庫・レジ口座・組織・価格種別) ──


class ReferenceEntity(BaseModel):
    """id で識別される参照データ。選択状態の判定も id で行う。"""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: int
    name: str = ""

    coerce_name = field_validator("name", mode="before")(_none_to_empty)

    @property
    def display_name(self) -> str:
        return self.name

    def same_as(self, other: "ReferenceEntity | None") -> bool:
        return other is not None and type(other) is type(self) and other.id == self.id


class Warehouse(ReferenceEntity):
    address: str | None = None


class Paybox(ReferenceEntity):
    currency: str | None = None
    balance: float | None = None


class Organization(ReferenceEntity):
    work_name: str | None = None
    inn: str | None = None
    type: str | None = None

    @property
    def display_name(self) -> str:
        return self.work_name or self.name


class PriceType(ReferenceEntity):
    tags: list[str] = Field(default_factory=list)


# ── 商品・明細 ───────────────────────────────────


class Product(BaseModel):
    """
    商品カタログのスナップショット。

    price / quantity(在庫) は取得時点の値で、送信時に最新である保証はない。
    price は欠損・数値でない文字列もそのまま保持し、金額計算時に
    cart.price_or_zero で正規化する。
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    name: str = ""
    article: str | None = None
    price: float | str | None = None
    quantity: float | None = None
    unit: str | int | None = None

    coerce_name = field_validator("name", mode="before")(_none_to_empty)

    @field_validator("article", mode="before")
    @classmethod
    def article_as_text(cls, v):
        return None if v is None else str(v)


class OrderItem(BaseModel):
    """明細行。1 つの下書きに同じ商品 id の明細は 1 行だけ。"""

    product: Product
    quantity: int = Field(default=1, gt=0)


# ── 一覧の 1 ページ ─────────────────────────────


class CustomerPage(BaseModel):
    items: list[PersistedCustomer]
    total: int
    page: int
    limit: int
    has_more: bool


# ── 販売伝票の作成結果 ───────────────────────────


class SaleConfirmation(BaseModel):
    """POST /docs_sales/ の成功レスポンス"""

    conduct: bool
    submitted_at: datetime
    paid_rubles: str
    response: Any = None

    @property
    def document_ids(self) -> list[int]:
        rows = self.response
        if isinstance(rows, dict):
            rows = rows.get("result") or rows.get("data") or [rows]
        if not isinstance(rows, list):
            return []
        return [row["id"] for row in rows if isinstance(row, dict) and "id" in row]
