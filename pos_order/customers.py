"""
顧客の解決

電話番号の入力 (1 文字ごと) または一覧からの選択から、
下書き注文に紐づける顧客を決める。

  入力が有効な電話番号
      数字だけにした入力が既知顧客の phone の部分文字列
          → 取得順で最初に一致した登録済み顧客
      一致なし
          → 一時顧客 "Клиент <整形済み番号>" を作る
  入力が空
      紐づいているのが一時顧客なら解除、登録済み顧客ならそのまま
      (登録済み顧客の解除は clear() = 「×」ボタンで行う)
  一覧から選択
      検証なしで即座に紐づけ、電話番号欄にも反映する
"""

import itertools
import logging
from typing import Callable, Sequence

from .aggregate import OrderDraft
from .models import EphemeralCustomer, PersistedCustomer
from .phone import format_phone, phone_digits, validate_phone

logger = logging.getLogger(__name__)

INVALID_PHONE_MESSAGE = "Введите корректный номер телефона"
NEW_CUSTOMER_LABEL = "Новый клиент"
KNOWN_CUSTOMER_LABEL = "Клиент из базы"

_temp_ids = itertools.count(1)


def next_temp_id() -> int:
    """一時顧客の id。プロセス内で単調増加する。"""
    return next(_temp_ids)


def match_known_customer(phone: str, known: Sequence[PersistedCustomer]) -> PersistedCustomer | None:
    digits = phone_digits(phone)
    if not digits:
        return None
    for customer in known:
        if customer.phone and digits in customer.phone:
            return customer
    return None


def make_ephemeral_customer(phone: str, temp_id: int) -> EphemeralCustomer:
    formatted = format_phone(phone)
    return EphemeralCustomer(temp_id=temp_id, name=f"Клиент {formatted}", phone=formatted)


def origin_label(customer: PersistedCustomer | EphemeralCustomer) -> str:
    return NEW_CUSTOMER_LABEL if customer.is_ephemeral else KNOWN_CUSTOMER_LABEL


class CustomerResolver:
    def __init__(self, draft: OrderDraft, id_factory: Callable[[], int] = next_temp_id) -> None:
        self.draft = draft
        self.phone_input = ""
        self._id_factory = id_factory

    @property
    def phone_error(self) -> str | None:
        if not self.phone_input.strip():
            return None
        return None if validate_phone(self.phone_input) else INVALID_PHONE_MESSAGE

    def on_phone_input(
        self, raw: str, known: Sequence[PersistedCustomer]
    ) -> PersistedCustomer | EphemeralCustomer | None:
        """電話番号欄が変わるたびに呼ぶ。紐づいた顧客を返す。"""
        self.phone_input = raw or ""
        current = self.draft.customer

        if not self.phone_input.strip():
            if current is not None and current.is_ephemeral:
                self.draft.set_customer(None)
            return self.draft.customer

        if not validate_phone(self.phone_input):
            return current

        return self.resolve(known)

    def resolve(self, known: Sequence[PersistedCustomer]) -> PersistedCustomer | EphemeralCustomer | None:
        """
        現在の入力を既知顧客と照合し直す。

        「もっと読み込む」で一覧が増えたときにも呼ぶ。
        """
        if not validate_phone(self.phone_input):
            return self.draft.customer

        match = match_known_customer(self.phone_input, known)
        if match is not None:
            self.draft.set_customer(match)
            return match

        current = self.draft.customer
        formatted = format_phone(self.phone_input)
        if isinstance(current, EphemeralCustomer) and current.phone == formatted:
            return current

        customer = make_ephemeral_customer(self.phone_input, self._id_factory())
        logger.debug("No known customer for %s, using ephemeral %s", formatted, customer.key)
        self.draft.set_customer(customer)
        return customer

    def select(self, customer: PersistedCustomer) -> PersistedCustomer:
        self.draft.set_customer(customer)
        if customer.phone:
            self.phone_input = customer.phone
        return customer

    def clear(self) -> None:
        self.draft.set_customer(None)
        self.phone_input = ""
