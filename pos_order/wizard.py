"""
ステップゲート — 4 ステップのウィザード

状態遷移:
    CUSTOMER(0) → PARAMETERS(1) → ITEMS(2) → CONFIRMATION(3)

  next  現在ステップの完全性条件を満たすときだけ進める
          0: 参照データの読み込み (トークン確認) に成功し、顧客が選択済み
          1: 倉庫・レジ口座・組織・価格種別がすべて選択済み
          2: カートに 1 行以上
          3: 次はない (送信は orchestrator が行う)
  back  1 以上ならいつでも戻れる。検証なし

送信はステップ 3 でのみ可能。ステップ 3 の間は下書きを変更できない。

トークンが無効だった場合、ステップ 0 はエラー表示の行き止まりになり、
再ログインするまで next は許可されない。
"""

from enum import IntEnum

from .aggregate import OrderDraft
from .errors import StepBlockedError
from .queries import ReferenceData

TOKEN_INVALID_MESSAGE = "Токен недействителен. Нельзя перейти к следующему шагу"
NO_CUSTOMER_MESSAGE = "Выберите или введите данные клиента"
NO_PARAMETERS_MESSAGE = "Выберите склад, счет, организацию и тип цены"
NO_ITEMS_MESSAGE = "Добавьте хотя бы один товар"
LAST_STEP_MESSAGE = "Это последний шаг"
NOT_CONFIRMATION_MESSAGE = "Отправка доступна только на шаге подтверждения"
READ_ONLY_MESSAGE = "Заказ нельзя изменить на шаге подтверждения. Вернитесь назад"


class Step(IntEnum):
    CUSTOMER = 0
    PARAMETERS = 1
    ITEMS = 2
    CONFIRMATION = 3


STEP_TITLES = {
    Step.CUSTOMER: "Клиент",
    Step.PARAMETERS: "Параметры",
    Step.ITEMS: "Товары",
    Step.CONFIRMATION: "Подтверждение",
}


class StepGate:
    def __init__(self, draft: OrderDraft, references: ReferenceData) -> None:
        self.draft = draft
        self.references = references
        self.step = Step.CUSTOMER

    @property
    def dead_end(self) -> bool:
        """トークン無効によるエラー表示状態か"""
        return self.step == Step.CUSTOMER and self.references.auth_failed

    def blocking_reason(self) -> tuple[list[str], str] | None:
        """next を妨げている (不足項目, メッセージ)。進めるなら None。"""
        if self.step == Step.CUSTOMER:
            if not self.references.ready:
                return ["token"], TOKEN_INVALID_MESSAGE
            if not self.draft.has_customer:
                return ["customer"], NO_CUSTOMER_MESSAGE
        elif self.step == Step.PARAMETERS:
            missing = self.draft.missing_references()
            if missing:
                return missing, NO_PARAMETERS_MESSAGE
        elif self.step == Step.ITEMS:
            if not self.draft.has_items:
                return ["items"], NO_ITEMS_MESSAGE
        else:
            return [], LAST_STEP_MESSAGE
        return None

    def can_advance(self) -> bool:
        return self.blocking_reason() is None

    def next(self) -> Step:
        blocked = self.blocking_reason()
        if blocked:
            missing, message = blocked
            raise StepBlockedError(missing, message)
        self.step = Step(self.step + 1)
        return self.step

    def back(self) -> Step:
        if self.step > Step.CUSTOMER:
            self.step = Step(self.step - 1)
        return self.step

    def reset(self) -> None:
        self.step = Step.CUSTOMER

    @property
    def can_submit(self) -> bool:
        return self.step == Step.CONFIRMATION

    @property
    def read_only(self) -> bool:
        """確認ステップでは下書きを変更できない"""
        return self.step == Step.CONFIRMATION

    def ensure_editable(self) -> None:
        if self.read_only:
            raise StepBlockedError([], READ_ONLY_MESSAGE)

    def ensure_submittable(self) -> None:
        if not self.can_submit:
            raise StepBlockedError(["step"], NOT_CONFIRMATION_MESSAGE)
